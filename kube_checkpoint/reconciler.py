"""Reconciler that keeps a temporary API server available on the node.

Each iteration reads the pods running on the node and acts on the control
plane state they describe:

- Both API servers running: remove the temporary API server manifest from
  the active directory so the kubelet stops it.
- Only the self-hosted API server running: capture its pod spec, clean it up,
  copy its secrets to disk and checkpoint it in the standby directory.
- No API server running: install the checkpointed manifest into the active
  directory so the node has an API server to bootstrap against.

Iterations run one at a time and only act on the pods fetched in that
iteration. Files on disk are the only state carried between iterations.
"""

import asyncio
import logging
from time import perf_counter

from .classifier import ControlPlaneState, PodMatcher, classify, find_primary
from .config import CheckpointConfig
from .exceptions import ManifestException
from .manifest import PodSnapshot, StaticPodManifest
from .observer import PodObserver
from .sanitizer import sanitize
from .secret import SecretMaterializer
from .store import ManifestStore

__all__ = [
    "Reconciler",
]

_LOGGER = logging.getLogger(__name__)


class Reconciler:
    """Runs the fetch, classify and act cycle on a fixed interval."""

    def __init__(
        self,
        config: CheckpointConfig,
        observer: PodObserver,
        materializer: SecretMaterializer,
        store: ManifestStore,
    ) -> None:
        """Initialize Reconciler.

        Raises InputException if the manifest template is malformed.
        """
        self._config = config
        self._observer = observer
        self._materializer = materializer
        self._store = store
        self._template = StaticPodManifest.from_template(config.manifest_template)
        self._primary = PodMatcher(config.primary_name, config.system_namespace)
        self._temp = PodMatcher(config.temp_name, config.system_namespace)

    async def run(self, iterations: int | None = None) -> None:
        """Reconcile forever, or for a number of iterations if specified.

        Only a FatalException escapes. Unreadable pod lists and failures to
        remove or install the active manifest are logged and retried on the
        next iteration.
        """
        count = 0
        while True:
            await self.reconcile_once()
            count += 1
            if iterations is not None and count >= iterations:
                return
            await asyncio.sleep(self._config.interval)

    async def reconcile_once(self) -> ControlPlaneState:
        """Perform a single iteration and return the state that was acted on."""
        t1 = perf_counter()
        snapshot, err = await self._observer.fetch()
        if err is not None:
            _LOGGER.warning("Unable to read pods from the kubelet: %s", err)
        state = classify(snapshot, self._primary, self._temp)
        if state == ControlPlaneState.BOTH_RUNNING:
            _LOGGER.info(
                "Both temp and kube apiserver running, removing temp apiserver"
            )
            await self._remove_active()
        elif state == ControlPlaneState.PRIMARY_RUNNING:
            _LOGGER.info("kube-apiserver found, checkpointing temp apiserver")
            await self._checkpoint(snapshot)
        else:
            _LOGGER.info("No apiserver running, installing temp apiserver")
            await self._promote()
        _LOGGER.debug("Reconciled %s in %0.2fs", state.value, perf_counter() - t1)
        return state

    async def _remove_active(self) -> None:
        try:
            await self._store.remove(
                self._config.active_dir, self._config.manifest_filename
            )
        except OSError as err:
            _LOGGER.warning("Unable to remove active manifest: %s", err)

    async def _checkpoint(self, snapshot: PodSnapshot) -> None:
        if (pod := find_primary(snapshot, self._primary)) is None:
            raise ManifestException("Primary API server vanished from snapshot")
        pod = await self._materializer.materialize(sanitize(pod))
        content = self._template.with_spec(pod.spec).to_json()
        try:
            await self._store.write(
                self._config.standby_dir, self._config.manifest_filename, content
            )
        except OSError as err:
            raise ManifestException(
                f"Unable to write standby manifest to {self._config.standby_dir}: {err}"
            ) from err
        _LOGGER.info(
            "Finished checkpointing %s to %s",
            pod,
            self._config.standby_dir / self._config.manifest_filename,
        )

    async def _promote(self) -> None:
        try:
            await self._store.promote(
                self._config.standby_dir,
                self._config.active_dir,
                self._config.manifest_filename,
            )
        except OSError as err:
            _LOGGER.warning("Unable to install temp apiserver manifest: %s", err)
