"""Classification of the node's control plane state from the pods it runs.

API server pods are identified by a substring of their name within the
system namespace. This is fragile: any pod in that namespace whose name
happens to contain the fragment is treated as an API server.
"""

from dataclasses import dataclass
from enum import Enum
import logging

from .manifest import PodRecord, PodSnapshot

__all__ = [
    "ControlPlaneState",
    "PodMatcher",
    "classify",
    "find_primary",
]

_LOGGER = logging.getLogger(__name__)


class ControlPlaneState(str, Enum):
    """Which API servers are currently running on the node."""

    BOTH_RUNNING = "both_running"
    """Both the self-hosted and the temporary API server are running."""

    PRIMARY_RUNNING = "primary_running"
    """Only the self-hosted API server is running."""

    NONE_RUNNING = "none_running"
    """No self-hosted API server is running."""


@dataclass(frozen=True)
class PodMatcher:
    """Matches pods by a fragment of their name within a namespace."""

    name: str
    namespace: str

    def matches(self, pod: PodRecord) -> bool:
        return self.name in pod.name and pod.namespace == self.namespace

    def first(self, snapshot: PodSnapshot) -> PodRecord | None:
        """Return the first matching pod in snapshot order."""
        return next((pod for pod in snapshot if self.matches(pod)), None)


def classify(
    snapshot: PodSnapshot, primary: PodMatcher, temp: PodMatcher
) -> ControlPlaneState:
    """Return the control plane state for the pods in the snapshot."""
    has_primary = any(primary.matches(pod) for pod in snapshot)
    has_temp = any(temp.matches(pod) for pod in snapshot)
    if has_primary and has_temp:
        return ControlPlaneState.BOTH_RUNNING
    if has_primary:
        return ControlPlaneState.PRIMARY_RUNNING
    return ControlPlaneState.NONE_RUNNING


def find_primary(snapshot: PodSnapshot, primary: PodMatcher) -> PodRecord | None:
    """Return the self-hosted API server pod, if running."""
    return primary.first(snapshot)
