"""Atomic storage of static pod manifests.

Manifests live in two directories. The active directory is watched by the
kubelet, so a file appearing there starts a pod and removing it stops the pod.
The standby directory holds the last known good manifest and is not watched.

Every write goes to a dot-prefixed temporary file in the target directory
that is renamed over the target, so a reader only ever sees the previous or
the complete new content. The kubelet ignores dot-prefixed files.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os

__all__ = [
    "ManifestStore",
    "atomic_write",
]

_LOGGER = logging.getLogger(__name__)

TMP_PREFIX = ".tmp-"
MANIFEST_MODE = 0o644


def _tmp_path(path: Path) -> Path:
    return path.with_name(f"{TMP_PREFIX}{path.name}")


async def _discard(tmp_path: Path) -> None:
    try:
        await aiofiles.os.remove(tmp_path)
    except FileNotFoundError:
        pass
    except OSError as err:
        _LOGGER.warning("Unable to remove temporary file %s: %s", tmp_path, err)


async def atomic_write(path: Path, content: bytes, mode: int = MANIFEST_MODE) -> None:
    """Replace the contents of the file at path with content.

    The parent directory must exist. Raises OSError on failure, in which case
    the previous content of path is left in place.
    """
    tmp_path = _tmp_path(path)
    try:
        async with aiofiles.open(str(tmp_path), mode="wb") as tmp_file:
            await tmp_file.write(content)
            await tmp_file.flush()
            await asyncio.to_thread(os.fsync, tmp_file.fileno())
        await asyncio.to_thread(os.chmod, tmp_path, mode)
        await aiofiles.os.replace(tmp_path, path)
    except OSError:
        await _discard(tmp_path)
        raise


class ManifestStore:
    """Creates, removes and copies manifest files."""

    async def write(
        self, directory: Path, filename: str, content: bytes, mode: int = MANIFEST_MODE
    ) -> None:
        """Atomically write a file, creating the directory if needed."""
        await aiofiles.os.makedirs(directory, exist_ok=True)
        path = directory / filename
        await atomic_write(path, content, mode)
        _LOGGER.debug("Wrote %d bytes to %s", len(content), path)

    async def read(self, directory: Path, filename: str) -> bytes | None:
        """Return the file contents or None if it does not exist."""
        path = directory / filename
        try:
            async with aiofiles.open(str(path), mode="rb") as manifest_file:
                return await manifest_file.read()
        except FileNotFoundError:
            return None

    async def remove(self, directory: Path, filename: str) -> bool:
        """Remove a file, returning False if it did not exist."""
        path = directory / filename
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            _LOGGER.debug("Manifest %s already absent", path)
            return False
        _LOGGER.info("Removed manifest %s", path)
        return True

    async def promote(self, standby_dir: Path, active_dir: Path, filename: str) -> bool:
        """Copy the standby file into the active directory.

        Returns False when there is no standby file to promote.
        """
        if (content := await self.read(standby_dir, filename)) is None:
            _LOGGER.warning(
                "No standby manifest %s to promote", standby_dir / filename
            )
            return False
        if await self.read(active_dir, filename) == content:
            _LOGGER.debug("Active manifest %s is up to date", active_dir / filename)
            return True
        await self.write(active_dir, filename, content)
        _LOGGER.info(
            "Promoted manifest %s to %s", standby_dir / filename, active_dir / filename
        )
        return True
