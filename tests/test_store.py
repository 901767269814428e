"""Tests for the manifest store."""

from pathlib import Path
import stat
from typing import Any

import aiofiles.os
import pytest

from kube_checkpoint.store import ManifestStore, atomic_write

FILENAME = "apiserver.json"


@pytest.fixture
def store() -> ManifestStore:
    return ManifestStore()


async def test_write(store: ManifestStore, tmp_path: Path) -> None:
    """Test writing a new file creates the directory."""
    directory = tmp_path / "manifests"
    await store.write(directory, FILENAME, b'{"kind": "Pod"}')
    assert (directory / FILENAME).read_bytes() == b'{"kind": "Pod"}'
    assert stat.S_IMODE((directory / FILENAME).stat().st_mode) == 0o644
    # No temporary file is left behind
    assert [p.name for p in directory.iterdir()] == [FILENAME]


async def test_write_replaces(store: ManifestStore, tmp_path: Path) -> None:
    """Test overwriting an existing file."""
    await store.write(tmp_path, FILENAME, b"old")
    await store.write(tmp_path, FILENAME, b"new")
    assert await store.read(tmp_path, FILENAME) == b"new"


async def test_write_interrupted_before_rename(
    store: ManifestStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a failure after the temporary file is written keeps the old content."""
    await store.write(tmp_path, FILENAME, b"old")

    async def fail_replace(*args: Any, **kwargs: Any) -> None:
        assert (tmp_path / f".tmp-{FILENAME}").read_bytes() == b"new"
        raise OSError("simulated crash")

    monkeypatch.setattr(aiofiles.os, "replace", fail_replace)
    with pytest.raises(OSError, match="simulated crash"):
        await store.write(tmp_path, FILENAME, b"new")

    assert (tmp_path / FILENAME).read_bytes() == b"old"
    assert not (tmp_path / f".tmp-{FILENAME}").exists()


async def test_write_cleanup_failure_keeps_error(
    store: ManifestStore,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test a failure removing the temporary file does not hide the write error."""
    await store.write(tmp_path, FILENAME, b"old")

    async def fail_replace(*args: Any, **kwargs: Any) -> None:
        raise OSError("simulated crash")

    async def fail_remove(*args: Any, **kwargs: Any) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(aiofiles.os, "replace", fail_replace)
    monkeypatch.setattr(aiofiles.os, "remove", fail_remove)
    with pytest.raises(OSError, match="simulated crash"):
        await store.write(tmp_path, FILENAME, b"new")

    assert (tmp_path / FILENAME).read_bytes() == b"old"
    assert "Unable to remove temporary file" in caplog.text


async def test_atomic_write_mode(tmp_path: Path) -> None:
    """Test writing a file with restricted permissions."""
    await atomic_write(tmp_path / "apiserver.key", b"key", 0o600)
    assert stat.S_IMODE((tmp_path / "apiserver.key").stat().st_mode) == 0o600


async def test_read_missing(store: ManifestStore, tmp_path: Path) -> None:
    """Test reading a file that does not exist."""
    assert await store.read(tmp_path, FILENAME) is None


async def test_remove(store: ManifestStore, tmp_path: Path) -> None:
    """Test removing a file and removing it again."""
    await store.write(tmp_path, FILENAME, b"content")
    assert await store.remove(tmp_path, FILENAME)
    assert not (tmp_path / FILENAME).exists()
    assert not await store.remove(tmp_path, FILENAME)


async def test_remove_missing_directory(store: ManifestStore, tmp_path: Path) -> None:
    """Test removing from a directory that does not exist is not an error."""
    assert not await store.remove(tmp_path / "missing", FILENAME)


async def test_promote(store: ManifestStore, tmp_path: Path) -> None:
    """Test promoting the standby file into the active directory."""
    standby = tmp_path / "standby"
    active = tmp_path / "active"
    await store.write(standby, FILENAME, b"checkpoint")
    assert await store.promote(standby, active, FILENAME)
    assert (active / FILENAME).read_bytes() == b"checkpoint"
    assert (standby / FILENAME).read_bytes() == b"checkpoint"


async def test_promote_replaces_stale(store: ManifestStore, tmp_path: Path) -> None:
    """Test promoting over an outdated active file."""
    standby = tmp_path / "standby"
    active = tmp_path / "active"
    await store.write(active, FILENAME, b"stale")
    await store.write(standby, FILENAME, b"checkpoint")
    assert await store.promote(standby, active, FILENAME)
    assert (active / FILENAME).read_bytes() == b"checkpoint"


async def test_promote_unchanged(
    store: ManifestStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test an up to date active file is not rewritten."""
    standby = tmp_path / "standby"
    active = tmp_path / "active"
    await store.write(standby, FILENAME, b"checkpoint")
    await store.write(active, FILENAME, b"checkpoint")

    async def fail_replace(*args: Any, **kwargs: Any) -> None:
        raise AssertionError("Active manifest should not be rewritten")

    monkeypatch.setattr(aiofiles.os, "replace", fail_replace)
    assert await store.promote(standby, active, FILENAME)


async def test_promote_missing_standby(store: ManifestStore, tmp_path: Path) -> None:
    """Test promoting without a standby file is skipped."""
    active = tmp_path / "active"
    assert not await store.promote(tmp_path / "standby", active, FILENAME)
    assert not (active / FILENAME).exists()
