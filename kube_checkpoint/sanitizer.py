"""Clean up a captured API server pod before it is checkpointed.

The self-hosted API server pod carries a service account token volume that
must not be baked into a static manifest, and listens on the insecure port
the temporary API server can't share with it.
"""

import copy
import logging

from .manifest import PodRecord

__all__ = [
    "sanitize",
    "strip_default_volumes",
    "rewrite_insecure_port",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_VOLUME_FRAGMENT = "default"
INSECURE_PORT_FLAG = "insecure-port"
PRIMARY_INSECURE_PORT = "8080"
TEMP_INSECURE_PORT = "8081"


def strip_default_volumes(pod: PodRecord) -> PodRecord:
    """Remove volumes and first container mounts named like the default token."""
    spec = copy.deepcopy(pod.spec)
    if "volumes" in spec:
        spec["volumes"] = [
            volume
            for volume in spec["volumes"] or []
            if DEFAULT_VOLUME_FRAGMENT not in volume.get("name", "")
        ]
    if containers := spec.get("containers"):
        container = containers[0]
        if "volumeMounts" in container:
            container["volumeMounts"] = [
                mount
                for mount in container["volumeMounts"] or []
                if DEFAULT_VOLUME_FRAGMENT not in mount.get("name", "")
            ]
    return pod.with_spec(spec)


def rewrite_insecure_port(pod: PodRecord) -> PodRecord:
    """Move the first container's insecure port flag from 8080 to 8081.

    Only the first occurrence of 8080 in the first matching argument is
    replaced. Rewriting again is a no-op unless that argument contains 8080 a
    second time, for example `--insecure-port=8080 --bind=8080`, where each
    call replaces one more occurrence.
    """
    spec = copy.deepcopy(pod.spec)
    if not (containers := spec.get("containers")):
        return pod.with_spec(spec)
    command = containers[0].get("command") or []
    for i, arg in enumerate(command):
        if INSECURE_PORT_FLAG in arg:
            command[i] = arg.replace(PRIMARY_INSECURE_PORT, TEMP_INSECURE_PORT, 1)
            _LOGGER.debug("Rewrote insecure port flag %s to %s", arg, command[i])
            break
    return pod.with_spec(spec)


def sanitize(pod: PodRecord) -> PodRecord:
    """Return a copy of the pod safe to run as the temporary API server.

    Idempotent, except for the repeated 8080 case of `rewrite_insecure_port`.
    """
    return rewrite_insecure_port(strip_default_volumes(pod))
