"""Configuration objects for kube-checkpoint.

The defaults match a standard self-hosted control plane node layout. A config
file may override any of them, for example:

```yaml
interval: 30
standby_dir: /var/lib/kube-checkpoint/manifests
kubeconfig: /etc/kubernetes/kubeconfig
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path

import aiofiles
import yaml
from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig
from mashumaro.exceptions import ExtraKeysError, InvalidFieldValue, MissingField

from .exceptions import InputException
from .manifest import DEFAULT_MANIFEST_TEMPLATE

__all__ = [
    "CheckpointConfig",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class CheckpointConfig(DataClassDictMixin):
    """Configuration for the checkpoint reconciler."""

    kubelet_pods_url: str = "http://localhost:10255/pods"
    """Read-only kubelet endpoint listing the pods running on this node."""

    active_dir: Path = Path("/etc/kubernetes/manifests")
    """Static pod manifest directory watched by the kubelet."""

    standby_dir: Path = Path("/srv/kubernetes/manifests")
    """Directory holding the last known good manifest, not watched by the kubelet."""

    manifest_filename: str = "apiserver.json"
    """File name of the temporary API server manifest in both directories."""

    tls_dir: Path = Path("/etc/kubernetes/checkpoint-secrets")
    """Directory the API server secrets are written to."""

    interval: float = 60.0
    """Seconds to sleep between reconcile iterations."""

    fetch_timeout: float = 10.0
    """Timeout in seconds for reading the kubelet pod list."""

    system_namespace: str = "kube-system"
    """Namespace of the control plane pods and secrets."""

    primary_name: str = "kube-apiserver"
    """Name fragment identifying the self-hosted API server pod."""

    temp_name: str = "temp-apiserver"
    """Name fragment identifying the temporary API server pod."""

    secret_volume_name: str = "secrets"
    """Name of the API server volume that holds its TLS assets."""

    kubeconfig: str | None = None
    """Kubeconfig used to read secrets, or None to use in-cluster credentials."""

    manifest_template: str = field(default=DEFAULT_MANIFEST_TEMPLATE)
    """JSON pod manifest that captured API server specs are embedded into."""

    class Config(BaseConfig):
        forbid_extra_keys = True


async def read_config(config_path: Path) -> CheckpointConfig:
    """Return the configuration read from a YAML file.

    Any value not present in the file keeps its default. Unknown keys are
    rejected so that a misspelled setting is not silently ignored.
    """
    try:
        async with aiofiles.open(str(config_path)) as config_file:
            content = await config_file.read()
    except OSError as err:
        raise InputException(f"Unable to read config file {config_path}: {err}") from err
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Invalid config file {config_path}: {err}") from err
    if doc is None:
        _LOGGER.debug("Config file %s is empty, using defaults", config_path)
        return CheckpointConfig()
    if not isinstance(doc, dict):
        raise InputException(f"Invalid config file {config_path}: expected a mapping")
    try:
        return CheckpointConfig.from_dict(doc)
    except (MissingField, InvalidFieldValue, ExtraKeysError) as err:
        raise InputException(f"Invalid config file {config_path}: {err}") from err
