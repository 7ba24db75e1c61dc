"""Tests for CacheManager check / restore / store workflows."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mise_s3_cache.core.config import CacheConfig
from mise_s3_cache.core.exceptions import (
    ArchiveError,
    InvalidInputError,
    LocalIOError,
    PathNotFoundError,
    TransportError,
)
from mise_s3_cache.models import CacheMetadata, MissReason
from mise_s3_cache.persistence.memory_backend import MemoryObjectStore
from mise_s3_cache.services.cache_manager import CacheManager
from mise_s3_cache.utils.hashing import calculate_hash
from tests.conftest import NODE_FILES, relative_files
from tests.fakes.fake_installer import FakeInstaller
from tests.fakes.fake_manifest import FakeManifest

NODE = ("node", "18.17.0")


class _FailingUploadStore(MemoryObjectStore):
    """Memory store whose string uploads fail for keys ending in ``suffix``."""

    def __init__(self, suffix: str) -> None:
        super().__init__()
        self._suffix = suffix

    def upload_string(self, content: str, key: str) -> None:
        if key.endswith(self._suffix):
            raise TransportError(f"Failed to upload {key}: AccessDenied")
        super().upload_string(content, key)


@pytest.fixture
def outcomes(manager: CacheManager, monkeypatch: pytest.MonkeyPatch) -> list[MissReason | None]:
    """Reasons passed to the stats store, one per recorded restore outcome."""
    return _capture_outcomes(manager, monkeypatch)


def _capture_outcomes(manager: CacheManager, monkeypatch: pytest.MonkeyPatch) -> list[MissReason | None]:
    recorded: list[MissReason | None] = []
    original = manager._stats.record_outcome

    def record(tool: str, version: str, **kwargs):
        recorded.append(kwargs.get("reason"))
        return original(tool, version, **kwargs)

    monkeypatch.setattr(manager._stats, "record_outcome", record)
    return recorded


@pytest.mark.asyncio
class TestValidation:
    @pytest.mark.parametrize(("tool", "version"), [("", "1.0"), ("tool/name", "1.0"), ("node", ""), ("node", "9" * 51)])
    async def test_rejects_before_io(self, manager: CacheManager, store: MemoryObjectStore, tool: str, version: str) -> None:
        with pytest.raises(InvalidInputError):
            await manager.exists(tool, version)
        with pytest.raises(InvalidInputError):
            await manager.restore(tool, version, Path("/nonexistent"))
        assert store._objects == {}
        assert manager.stats().total_downloads == 0


@pytest.mark.asyncio
class TestCheck:
    async def test_never_stored_is_false(self, manager: CacheManager) -> None:
        assert await manager.exists(*NODE) is False

    async def test_true_after_store(self, manager: CacheManager, node_install: Path) -> None:
        await manager.store(*NODE, node_install)
        assert await manager.exists(*NODE) is True

    async def test_platforms_do_not_collide(self, manager: CacheManager, config: CacheConfig, store: MemoryObjectStore, manifest: FakeManifest, installer: FakeInstaller, node_install: Path) -> None:
        await manager.store(*NODE, node_install)
        other = CacheManager(config, store, manifest=manifest, installer=installer, platform="darwin", arch="aarch64")
        assert await other.exists(*NODE) is False


@pytest.mark.asyncio
class TestStore:
    async def test_writes_three_objects(self, manager: CacheManager, store: MemoryObjectStore, node_install: Path) -> None:
        assert await manager.store(*NODE, node_install) is True

        keys = manager.keys_for(*NODE)
        assert sorted(store._objects) == sorted([keys.archive, keys.metadata, keys.checksum])
        assert keys.base == "mise-cache/tools/node/18.17.0/linux-x86_64"

        archive = store._objects[keys.archive].data
        metadata = CacheMetadata.model_validate_json(store.download_string(keys.metadata))
        assert metadata.tool == "node"
        assert metadata.version == "18.17.0"
        assert metadata.platform == "linux"
        assert metadata.arch == "x86_64"
        assert metadata.size_bytes == len(archive)
        assert metadata.checksum == calculate_hash(archive)
        assert metadata.mise_version == "2024.1.0"
        assert metadata.compressed is True
        assert store.download_string(keys.checksum) == calculate_hash(archive)

    async def test_undeclared_tool_is_skipped(self, manager: CacheManager, store: MemoryObjectStore, tmp_path: Path) -> None:
        install = tmp_path / "go"
        install.mkdir()
        assert await manager.store("go", "1.21.0", install) is False
        assert store._objects == {}

    async def test_missing_install_path(self, manager: CacheManager) -> None:
        with pytest.raises(PathNotFoundError):
            await manager.store(*NODE, Path("/definitely/not/here"))

    async def test_upload_failure_raises_without_rollback(self, config: CacheConfig, manifest: FakeManifest, installer: FakeInstaller, node_install: Path) -> None:
        failing = _FailingUploadStore("metadata.json")
        manager = CacheManager(config, failing, manifest=manifest, installer=installer, platform="linux", arch="x86_64")

        with pytest.raises(TransportError, match="AccessDenied"):
            await manager.store(*NODE, node_install)

        keys = manager.keys_for(*NODE)
        assert failing.exists(keys.archive)
        assert failing.exists(keys.checksum)
        assert not failing.exists(keys.metadata)
        assert await manager.exists(*NODE) is False

    async def test_store_twice_stays_restorable(self, manager: CacheManager, node_install: Path, tmp_path: Path) -> None:
        assert await manager.store(*NODE, node_install)
        assert await manager.store(*NODE, node_install)

        dest = tmp_path / "restored"
        assert await manager.restore(*NODE, dest) is True
        assert relative_files(dest) == NODE_FILES

    async def test_scratch_space_is_cleaned(self, manager: CacheManager, config: CacheConfig, node_install: Path) -> None:
        await manager.store(*NODE, node_install)
        assert list(config.temp_dir().iterdir()) == []


@pytest.mark.asyncio
class TestRestore:
    async def test_round_trip(self, manager: CacheManager, outcomes: list, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)

        dest = tmp_path / "installs" / "node" / "18.17.0"
        assert await manager.restore(*NODE, dest) is True
        assert relative_files(dest) == NODE_FILES
        assert outcomes == [None]

        stats = manager.stats()
        assert stats.cache_hits == 1
        tool = stats.tools["node@18.17.0"]
        assert tool.cache_hits == 1
        assert tool.size_bytes > 0
        assert stats.total_savings_bytes == tool.size_bytes

    async def test_not_found(self, manager: CacheManager, outcomes: list, tmp_path: Path) -> None:
        dest = tmp_path / "dest"
        assert await manager.restore(*NODE, dest) is False
        assert not dest.exists()
        assert outcomes == [MissReason.NOT_FOUND]

        stats = manager.stats()
        assert (stats.cache_misses, stats.total_downloads) == (1, 1)

    async def test_archive_missing_is_download_failure(self, manager: CacheManager, outcomes: list, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        store.delete(manager.keys_for(*NODE).archive)

        assert await manager.restore(*NODE, tmp_path / "dest") is False
        assert manager.stats().cache_misses == 1
        assert outcomes == [MissReason.DOWNLOAD_FAILED]

    async def test_tampered_archive_is_not_extracted(self, manager: CacheManager, outcomes: list, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        keys = manager.keys_for(*NODE)
        data = bytearray(store._objects[keys.archive].data)
        data[len(data) // 2] ^= 0xFF
        store._objects[keys.archive].data = bytes(data)

        dest = tmp_path / "dest"
        assert await manager.restore(*NODE, dest) is False
        assert not dest.exists()
        assert manager.stats().cache_misses == 1
        assert outcomes == [MissReason.CHECKSUM_MISMATCH]

    async def test_missing_checksum_is_tolerated(self, manager: CacheManager, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        store.delete(manager.keys_for(*NODE).checksum)

        dest = tmp_path / "dest"
        assert await manager.restore(*NODE, dest) is True
        assert relative_files(dest) == NODE_FILES

    async def test_unreadable_archive_is_extraction_failure(self, manager: CacheManager, outcomes: list, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        keys = manager.keys_for(*NODE)
        store.upload_string("not a tarball", keys.archive)
        store.delete(keys.checksum)

        assert await manager.restore(*NODE, tmp_path / "dest") is False
        assert manager.stats().cache_misses == 1
        assert outcomes == [MissReason.EXTRACTION_FAILED]

    async def test_hit_then_miss_statistics(self, manager: CacheManager, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        assert await manager.restore(*NODE, tmp_path / "first") is True

        store.delete(manager.keys_for(*NODE).metadata)
        assert await manager.restore(*NODE, tmp_path / "second") is False

        stats = manager.stats()
        assert stats.cache_hits == 1
        assert stats.cache_misses == 1
        assert stats.total_downloads == 2
        assert stats.hit_rate == 50.0
        tool = stats.tools["node@18.17.0"]
        assert (tool.cache_hits, tool.cache_misses) == (1, 1)

    async def test_stats_file_is_json(self, manager: CacheManager, config: CacheConfig, tmp_path: Path) -> None:
        await manager.restore(*NODE, tmp_path / "dest")
        raw = json.loads(config.stats_file_path().read_text())
        assert raw["cache_misses"] == 1
        assert "node@18.17.0" in raw["tools"]

    async def test_restore_auto_uses_installer_path(self, manager: CacheManager, installer: FakeInstaller, node_install: Path) -> None:
        await manager.store(*NODE, node_install)
        assert await manager.restore_auto(*NODE) is True

        target = await installer.locate_install_path(*NODE)
        assert relative_files(target) == NODE_FILES

    async def test_store_auto_uses_installer_path(self, manager: CacheManager, installer: FakeInstaller) -> None:
        await installer.install(*NODE)
        assert await manager.store_auto(*NODE) is True
        assert await manager.exists(*NODE)


@pytest.mark.asyncio
class TestRestoreLocalFailures:
    async def test_undecodable_stats_file_is_reset(self, manager: CacheManager, config: CacheConfig, node_install: Path, tmp_path: Path) -> None:
        await manager.store(*NODE, node_install)
        stats_file = config.stats_file_path()
        stats_file.parent.mkdir(parents=True, exist_ok=True)
        stats_file.write_bytes(b"\xff\xfe garbage")

        assert await manager.restore(*NODE, tmp_path / "dest") is True
        stats = manager.stats()
        assert (stats.cache_hits, stats.cache_misses) == (1, 0)

    async def test_undecodable_stats_file_on_miss(self, manager: CacheManager, config: CacheConfig, tmp_path: Path) -> None:
        stats_file = config.stats_file_path()
        stats_file.parent.mkdir(parents=True, exist_ok=True)
        stats_file.write_bytes(b"\xff\xfe garbage")

        assert await manager.restore(*NODE, tmp_path / "dest") is False
        assert manager.stats().cache_misses == 1

    async def test_no_scratch_space_is_download_failure(self, store: MemoryObjectStore, manifest: FakeManifest, installer: FakeInstaller, node_install: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = CacheConfig(bucket="test-bucket", backend="memory", state_dir=blocker / "state")
        manager = CacheManager(config, store, manifest=manifest, installer=installer, platform="linux", arch="x86_64")
        recorded = _capture_outcomes(manager, monkeypatch)

        writer = CacheManager(
            CacheConfig(bucket="test-bucket", backend="memory", state_dir=tmp_path / "state"),
            store, manifest=manifest, installer=installer, platform="linux", arch="x86_64",
        )
        await writer.store(*NODE, node_install)

        dest = tmp_path / "dest"
        assert await manager.restore(*NODE, dest) is False
        assert not dest.exists()
        assert recorded == [MissReason.DOWNLOAD_FAILED]

    async def test_local_write_failure_is_download_failure(self, manager: CacheManager, outcomes: list, node_install: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        await manager.store(*NODE, node_install)

        def disk_full(key: str, local_path: Path) -> None:
            raise LocalIOError(f"Failed to write {local_path}: [Errno 28] No space left on device")

        monkeypatch.setattr(manager._store, "download_file", disk_full)

        assert await manager.restore(*NODE, tmp_path / "dest") is False
        assert outcomes == [MissReason.DOWNLOAD_FAILED]


@pytest.mark.asyncio
class TestStoreRejectsUnrestorableTrees:
    async def test_absolute_symlink_is_not_uploaded(self, manager: CacheManager, store: MemoryObjectStore, node_install: Path, tmp_path: Path) -> None:
        outside = tmp_path / "system-sh"
        outside.write_text("#!/bin/sh\n")
        (node_install / "bin" / "sh").symlink_to(outside)

        with pytest.raises(ArchiveError, match="absolute path"):
            await manager.store(*NODE, node_install)
        assert store._objects == {}
