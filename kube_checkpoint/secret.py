"""Module for materializing API server secrets on local disk.

A checkpointed API server can't read its TLS assets from a secret volume
because there may be no API server to serve the secret when it starts. The
secret is copied to a local directory and the volume is rewritten as a host
path pointing at that directory.
"""

import asyncio
from abc import ABC, abstractmethod
import base64
import copy
import logging
from pathlib import Path
from typing import Any

import aiofiles.os
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from .exceptions import FatalException, SecretException
from .manifest import PodRecord
from .store import atomic_write

__all__ = [
    "SecretSource",
    "KubernetesSecretSource",
    "SecretMaterializer",
]

_LOGGER = logging.getLogger(__name__)

SECRET_FILE_MODE = 0o600


class SecretSource(ABC):
    """Resolves secrets from the control plane."""

    @abstractmethod
    async def get_secret(self, name: str, namespace: str) -> dict[str, bytes]:
        """Return the decoded data of the named secret.

        Raises SecretException if the secret can't be read.
        """


class KubernetesSecretSource(SecretSource):
    """Reads secrets through the Kubernetes API."""

    def __init__(self, core_api: client.CoreV1Api) -> None:
        """Initialize KubernetesSecretSource."""
        self._core_api = core_api

    @classmethod
    def from_config(cls, kubeconfig: str | None = None) -> "KubernetesSecretSource":
        """Create a source from a kubeconfig file or in-cluster credentials."""
        config_obj = client.Configuration()
        try:
            if kubeconfig:
                config.load_kube_config(
                    config_file=kubeconfig, client_configuration=config_obj
                )
            else:
                config.load_incluster_config(client_configuration=config_obj)
        except ConfigException as err:
            raise FatalException(
                f"Unable to load Kubernetes client configuration: {err}"
            ) from err
        return cls(client.CoreV1Api(client.ApiClient(config_obj)))

    async def get_secret(self, name: str, namespace: str) -> dict[str, bytes]:
        """Return the decoded data of the named secret."""
        try:
            secret = await asyncio.to_thread(
                self._core_api.read_namespaced_secret, name, namespace
            )
        except ApiException as err:
            raise SecretException(
                name, f"Unable to read from namespace {namespace}: {err.reason}"
            ) from err
        except (OSError, HTTPError) as err:
            raise SecretException(name, f"Unable to reach the API server: {err}") from err
        return {
            key: base64.b64decode(value) for key, value in (secret.data or {}).items()
        }


def _find_secret_volume(
    volumes: list[dict[str, Any]], volume_name: str
) -> dict[str, Any] | None:
    for volume in volumes:
        if volume.get("name") == volume_name and volume.get("secret"):
            return volume
    return None


def _check_key(secret_name: str, key: str) -> None:
    if not key or "/" in key or key in (".", ".."):
        raise SecretException(secret_name, f"Data key '{key}' is not a valid file name")


class SecretMaterializer:
    """Copies a pod's secret volume to disk and points the volume at it."""

    def __init__(
        self,
        source: SecretSource,
        tls_dir: Path,
        namespace: str,
        volume_name: str,
    ) -> None:
        """Initialize SecretMaterializer."""
        self._source = source
        self._tls_dir = tls_dir
        self._namespace = namespace
        self._volume_name = volume_name

    async def materialize(self, pod: PodRecord) -> PodRecord:
        """Return a copy of the pod reading its secret volume from the TLS dir.

        The pod is returned unchanged if it has no matching secret volume.
        """
        spec = copy.deepcopy(pod.spec)
        volume = _find_secret_volume(spec.get("volumes") or [], self._volume_name)
        if volume is None:
            _LOGGER.debug("Pod %s has no '%s' secret volume", pod, self._volume_name)
            return pod.with_spec(spec)

        secret_name = volume["secret"].get("secretName")
        if not secret_name:
            raise SecretException(
                self._volume_name, "secret volume is missing secretName"
            )
        data = await self._source.get_secret(secret_name, self._namespace)
        await self._write_secret(secret_name, data)

        del volume["secret"]
        volume["hostPath"] = {"path": str(self._tls_dir)}
        _LOGGER.info(
            "Materialized secret %s/%s (%d keys) to %s",
            self._namespace,
            secret_name,
            len(data),
            self._tls_dir,
        )
        return pod.with_spec(spec)

    async def _write_secret(self, secret_name: str, data: dict[str, bytes]) -> None:
        for key in data:
            _check_key(secret_name, key)
        try:
            await aiofiles.os.makedirs(self._tls_dir, exist_ok=True)
            for key, value in data.items():
                await atomic_write(self._tls_dir / key, value, SECRET_FILE_MODE)
        except OSError as err:
            raise SecretException(
                secret_name, f"Unable to write to {self._tls_dir}: {err}"
            ) from err
