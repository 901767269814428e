"""Library for reading the pods running on the node from the kubelet."""

import logging

import httpx

from .exceptions import InputException
from .manifest import PodSnapshot

__all__ = [
    "PodObserver",
]

_LOGGER = logging.getLogger(__name__)


class PodObserver:
    """Reads the kubelet's read-only pod listing."""

    def __init__(
        self, url: str, timeout: float, client: httpx.AsyncClient | None = None
    ) -> None:
        """Initialize PodObserver.

        A client may be supplied by the caller, in which case the caller owns
        it and `close` leaves it open.
        """
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self) -> tuple[PodSnapshot, Exception | None]:
        """Return the pods currently known to the kubelet.

        Errors are not raised: an empty snapshot is returned along with the
        error so the caller can log it. There is no retry, the next fetch is
        the retry.
        """
        try:
            response = await self._client.get(self._url)
            response.raise_for_status()
            snapshot = PodSnapshot.parse_doc(response.json())
        except (httpx.HTTPError, ValueError, InputException) as err:
            return PodSnapshot(), err
        _LOGGER.debug("Fetched %d pods from %s", len(snapshot), self._url)
        return snapshot, None

    async def close(self) -> None:
        """Release the HTTP client if owned by the observer."""
        if self._owns_client:
            await self._client.aclose()
