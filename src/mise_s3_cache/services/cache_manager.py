"""Cache manager: check / restore / store / cleanup / warm workflows.

Each cache entry is three objects under one key prefix: the archive, its
metadata and its checksum. They are written concurrently with no
transaction, so a reader can observe any subset of them. Restore treats
anything short of a downloadable archive as a miss; a missing checksum is
tolerated, a mismatching one is not.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from mise_s3_cache.archive.codec import TarArchiveCodec
from mise_s3_cache.core.config import CacheConfig
from mise_s3_cache.core.exceptions import (
    ArchiveError,
    CacheError,
    IntegrityError,
    InvalidInputError,
    LocalIOError,
    PathNotFoundError,
    TransportError,
)
from mise_s3_cache.installer.protocols import IToolInstaller
from mise_s3_cache.key_strategy import ARCHIVE_NAME, CacheKeys
from mise_s3_cache.manifest.protocols import IToolManifest
from mise_s3_cache.models import (
    AnalysisReport,
    CacheMetadata,
    CacheStats,
    InstalledTool,
    MissReason,
    StoreStatus,
    ToolSpec,
    WarmReport,
)
from mise_s3_cache.persistence.protocols import IObjectStore
from mise_s3_cache.services.stats_store import StatsStore
from mise_s3_cache.utils.hashing import calculate_file_hash
from mise_s3_cache.utils.retry import retry_with_backoff
from mise_s3_cache.utils.system import current_timestamp, get_architecture, get_platform
from mise_s3_cache.utils.validation import is_valid_tool_name, is_valid_version

log = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


def validate_tool_version(tool: str, version: str) -> None:
    """Raise InvalidInputError unless both *tool* and *version* are well-formed."""
    if not is_valid_tool_name(tool):
        raise InvalidInputError(f"Invalid tool name: {tool!r}")
    if not is_valid_version(version):
        raise InvalidInputError(f"Invalid version: {version!r}")


class CacheManager:
    """Orchestrates the remote tool cache for one project.

    Args:
        config: Effective cache configuration.
        store: Object store holding cache entries.
        manifest: Source of the project's declared tools.
        installer: Installs and locates tool versions.
        stats: Local statistics store. Defaults to ``config.stats_file_path()``.
        codec: Archive codec. Defaults to one using ``config.compression``.
        platform: Override the host platform used in cache keys.
        arch: Override the host architecture used in cache keys.
    """

    def __init__(
        self,
        config: CacheConfig,
        store: IObjectStore,
        *,
        manifest: IToolManifest,
        installer: IToolInstaller,
        stats: StatsStore | None = None,
        codec: TarArchiveCodec | None = None,
        platform: str | None = None,
        arch: str | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._manifest = manifest
        self._installer = installer
        self._stats = stats or StatsStore(config.stats_file_path())
        self._codec = codec or TarArchiveCodec(config.compression)
        self._platform = platform or get_platform()
        self._arch = arch or get_architecture()

    def keys_for(self, tool: str, version: str) -> CacheKeys:
        return CacheKeys.for_tool(self._config.prefix, tool, version, self._platform, self._arch)

    # ── Check ────────────────────────────────────────────────────────

    async def exists(self, tool: str, version: str) -> bool:
        """Whether an entry's metadata object is present.

        ``True`` does not guarantee the archive is retrievable.
        """
        validate_tool_version(tool, version)
        keys = self.keys_for(tool, version)
        return await asyncio.to_thread(self._store.exists, keys.metadata)

    # ── Restore ──────────────────────────────────────────────────────

    async def restore(self, tool: str, version: str, install_path: Path) -> bool:
        """Download, verify and unpack ``tool@version`` into *install_path*.

        Returns ``True`` only when the tree was extracted. Every miss branch
        records its reason in the statistics store and returns ``False``.
        """
        start = time.monotonic()
        validate_tool_version(tool, version)
        keys = self.keys_for(tool, version)
        install_path = Path(install_path).expanduser()

        if not await asyncio.to_thread(self._store.exists, keys.metadata):
            log.debug("Cache miss: %s@%s - metadata not found", tool, version)
            self._record(tool, version, hit=False, reason=MissReason.NOT_FOUND)
            return False

        log.info("Restoring %s@%s from cache", tool, version)

        try:
            with self._scratch_dir("restore-") as scratch:
                reason, archive_size = await self._fetch_and_unpack(
                    tool, version, keys, scratch / ARCHIVE_NAME, install_path
                )
        except LocalIOError as e:
            log.warning("No scratch space to restore %s@%s: %s", tool, version, e)
            reason, archive_size = MissReason.DOWNLOAD_FAILED, 0

        if reason is not None:
            self._record(tool, version, hit=False, reason=reason)
            return False

        duration_ms = int((time.monotonic() - start) * 1000)
        log.info("Restored %s@%s from cache in %dms", tool, version, duration_ms)
        self._record(tool, version, hit=True, duration_ms=duration_ms, size_bytes=archive_size)
        return True

    async def _fetch_and_unpack(
        self,
        tool: str,
        version: str,
        keys: CacheKeys,
        archive: Path,
        install_path: Path,
    ) -> tuple[MissReason | None, int]:
        """Download, verify and extract one entry; returns the miss reason, if any."""
        try:
            await asyncio.to_thread(self._store.download_file, keys.archive, archive)
        except (TransportError, LocalIOError) as e:
            log.warning("Failed to download archive for %s@%s: %s", tool, version, e)
            return MissReason.DOWNLOAD_FAILED, 0

        try:
            await self._verify_checksum(keys, archive)
        except IntegrityError as e:
            log.warning("Checksum mismatch for %s@%s: %s", tool, version, e)
            return MissReason.CHECKSUM_MISMATCH, 0

        try:
            await asyncio.to_thread(self._codec.unpack, archive, install_path)
        except ArchiveError as e:
            log.error("Failed to extract %s@%s: %s", tool, version, e)
            return MissReason.EXTRACTION_FAILED, 0

        return None, archive.stat().st_size

    async def _verify_checksum(self, keys: CacheKeys, archive: Path) -> None:
        """Compare against the stored checksum when one can be fetched."""
        try:
            expected = await asyncio.to_thread(self._store.download_string, keys.checksum)
        except TransportError as e:
            log.debug("No checksum for %s, skipping verification: %s", keys.base, e)
            return

        actual = await asyncio.to_thread(calculate_file_hash, archive)
        if expected.strip() != actual:
            raise IntegrityError(
                f"expected {expected.strip()[:12]}..., got {actual[:12]}...",
                expected=expected.strip(),
                actual=actual,
            )
        log.debug("Checksum verified for %s", keys.base)

    async def restore_auto(self, tool: str, version: str) -> bool:
        """Restore into the path the installer reports for ``tool@version``."""
        validate_tool_version(tool, version)
        install_path = await self._installer.locate_install_path(tool, version)
        return await self.restore(tool, version, install_path)

    async def restore_project(self, *, selective: bool = False) -> list[ToolSpec]:
        """Restore every declared tool; returns the ones restored.

        With *selective*, tools without a cache entry are skipped up front
        instead of being recorded as misses.
        """
        restored: list[ToolSpec] = []
        for spec in self._valid_specs(self._manifest.list_declared_tools()):
            if selective and not await self.exists(spec.tool, spec.version):
                continue
            try:
                install_path = await self._installer.locate_install_path(spec.tool, spec.version)
            except CacheError as e:
                log.warning("Cannot determine install path for %s: %s", spec, e)
                continue
            if await self.restore(spec.tool, spec.version, install_path):
                restored.append(spec)
        return restored

    # ── Store ────────────────────────────────────────────────────────

    async def store(self, tool: str, version: str, install_path: Path) -> bool:
        """Pack *install_path* and upload it as the entry for ``tool@version``.

        Returns ``False`` without writing when the project does not declare
        the tool. Any upload failure raises; objects that did upload stay.
        """
        validate_tool_version(tool, version)
        install_path = Path(install_path).expanduser()
        if not install_path.exists():
            raise PathNotFoundError(f"Install path does not exist: {install_path}")

        if not await self._manifest.is_declared(tool, version):
            log.debug("Tool %s@%s not in project config, skipping cache", tool, version)
            return False

        log.info("Storing %s@%s in cache", tool, version)
        keys = self.keys_for(tool, version)

        with self._scratch_dir("store-") as scratch:
            archive = scratch / ARCHIVE_NAME
            archive_size = await asyncio.to_thread(self._codec.pack, install_path, archive)
            log.debug("Created archive: %d bytes", archive_size)
            checksum = await asyncio.to_thread(calculate_file_hash, archive)

            metadata = CacheMetadata(
                tool=tool,
                version=version,
                platform=self._platform,
                arch=self._arch,
                created_at=current_timestamp(),
                size_bytes=archive_size,
                checksum=checksum,
                mise_version=await self._installer.version(),
                compressed=self._codec.compressed,
            )

            results = await asyncio.gather(
                asyncio.to_thread(self._store.upload_file, archive, keys.archive),
                asyncio.to_thread(
                    self._store.upload_string, metadata.model_dump_json(indent=2), keys.metadata
                ),
                asyncio.to_thread(self._store.upload_string, checksum, keys.checksum),
                return_exceptions=True,
            )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            first = errors[0]
            if isinstance(first, CacheError):
                raise first
            raise TransportError(f"Failed to upload {tool}@{version}: {first}") from first

        log.info("Cached %s@%s (%d bytes)", tool, version, archive_size)
        return True

    async def store_auto(self, tool: str, version: str) -> bool:
        """Store from the path the installer reports for ``tool@version``."""
        validate_tool_version(tool, version)
        install_path = await self._installer.locate_install_path(tool, version)
        return await self.store(tool, version, install_path)

    async def installed_tools(self) -> list[InstalledTool]:
        """Declared tools whose install directory exists locally."""
        installed: list[InstalledTool] = []
        for spec in self._valid_specs(self._manifest.list_declared_tools()):
            try:
                path = await self._installer.locate_install_path(spec.tool, spec.version)
            except CacheError as e:
                log.debug("%s not installed: %s", spec, e)
                continue
            if path.exists():
                installed.append(
                    InstalledTool(tool=spec.tool, version=spec.version, install_path=str(path))
                )
        return installed

    async def store_installed(self) -> list[ToolSpec]:
        """Store every installed declared tool; returns the ones written."""
        stored: list[ToolSpec] = []
        for item in await self.installed_tools():
            try:
                written = await self.store(item.tool, item.version, Path(item.install_path))
            except CacheError as e:
                log.warning("Failed to store %s@%s: %s", item.tool, item.version, e)
                continue
            if written:
                stored.append(ToolSpec(tool=item.tool, version=item.version))
        return stored

    # ── Project-wide ─────────────────────────────────────────────────

    async def analyze(self) -> AnalysisReport:
        """Split the declared tools into cached and missing."""
        report = AnalysisReport()
        tools = self._valid_specs(self._manifest.list_declared_tools())
        if not tools:
            log.warning("No tools found in .mise.toml or .tool-versions")
            return report

        log.info("Analyzing cache status for %d project tools", len(tools))
        for spec in tools:
            if await self.exists(spec.tool, spec.version):
                report.cached.append(spec)
            else:
                report.missing.append(spec)
        return report

    async def warm(self, max_parallel: int | None = None) -> WarmReport:
        """Install and store every declared tool missing from the cache.

        Up to *max_parallel* tools are processed at once. A failure for one
        tool is logged and does not stop the others.
        """
        report = WarmReport()
        tools = self._valid_specs(self._manifest.list_declared_tools())
        if not tools:
            log.warning("No tools found to warm cache")
            return report

        log.info("Warming cache for %d project tools", len(tools))
        missing: list[ToolSpec] = []
        for spec in tools:
            if await self.exists(spec.tool, spec.version):
                log.info("%s already cached", spec)
                report.already_cached.append(spec)
            else:
                missing.append(spec)

        if not missing:
            log.info("All project tools already cached")
            return report

        log.info("Installing %d missing tools to warm cache", len(missing))
        sem = asyncio.Semaphore(max(1, max_parallel or self._config.parallel_uploads))

        async def _warm_one(spec: ToolSpec) -> bool:
            async with sem:
                try:
                    await self._installer.install(spec.tool, spec.version)
                    path = await self._installer.locate_install_path(spec.tool, spec.version)
                    return await self.store(spec.tool, spec.version, path)
                except CacheError as e:
                    log.warning("Failed to warm %s: %s", spec, e)
                    return False

        outcomes = await asyncio.gather(*(_warm_one(spec) for spec in missing))
        for spec, ok in zip(missing, outcomes):
            (report.stored if ok else report.failed).append(spec)

        log.info("Cache warming complete: %d stored, %d failed", len(report.stored), len(report.failed))
        return report

    # ── Cleanup ──────────────────────────────────────────────────────

    async def cleanup(self, max_age_days: int) -> list[str]:
        """Delete remote objects older than *max_age_days*; returns deleted keys."""
        log.info("Cleaning up cache entries older than %d days", max_age_days)
        deleted = await asyncio.to_thread(
            self._store.cleanup_older_than,
            f"{self._config.tools_prefix}/",
            max_age_days * _SECONDS_PER_DAY,
        )
        log.info("Removed %d old cache entries", len(deleted))
        for key in deleted:
            log.debug("Removed: %s", key)
        return deleted

    def cleanup_temp_files(self) -> int:
        """Remove leftovers from the local scratch directory; returns the count."""
        temp_dir = self._config.temp_dir()
        if not temp_dir.is_dir():
            log.info("No temporary files to clean")
            return 0

        count = 0
        for entry in temp_dir.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                log.warning("Failed to remove temp file %s: %s", entry, e)
                continue
            count += 1
            log.debug("Removed temp file: %s", entry)

        log.info("Cleaned up %d temporary files", count)
        return count

    # ── Reporting ────────────────────────────────────────────────────

    def stats(self) -> CacheStats:
        return self._stats.load()

    def test_connectivity(self) -> None:
        """List, write and delete a check object. Raises TransportError."""
        self._store.test_connectivity()

    async def store_status(self) -> StoreStatus:
        """Connectivity, size and object count of the remote cache."""
        status = StoreStatus(
            region=self._config.region,
            bucket=self._config.bucket,
            prefix=self._config.prefix,
            connected=False,
        )
        try:
            await retry_with_backoff(
                lambda: asyncio.to_thread(self._store.test_connectivity),
                max_attempts=2,
                retry_on=(TransportError,),
            )
        except TransportError as e:
            status.error = str(e)
            return status

        status.connected = True
        prefix = self._config.tools_prefix
        try:
            status.cache_size_bytes = await asyncio.to_thread(self._store.total_size, prefix)
            status.object_count = len(await asyncio.to_thread(self._store.list_objects, prefix))
        except TransportError as e:
            status.error = str(e)
        return status

    # ── Internals ────────────────────────────────────────────────────

    @staticmethod
    def _valid_specs(tools: list[ToolSpec]) -> list[ToolSpec]:
        valid = []
        for spec in tools:
            if is_valid_tool_name(spec.tool) and is_valid_version(spec.version):
                valid.append(spec)
            else:
                log.warning("Skipping %s: not a cacheable tool/version", spec)
        return valid

    def _record(
        self,
        tool: str,
        version: str,
        *,
        hit: bool,
        duration_ms: int = 0,
        reason: MissReason | None = None,
        size_bytes: int = 0,
    ) -> None:
        try:
            self._stats.record_outcome(
                tool,
                version,
                hit=hit,
                duration_ms=duration_ms,
                reason=reason,
                size_bytes=size_bytes,
            )
        except LocalIOError as e:
            log.warning("Failed to update cache statistics: %s", e)

    @contextmanager
    def _scratch_dir(self, prefix: str) -> Iterator[Path]:
        temp_root = self._config.temp_dir()
        try:
            temp_root.mkdir(parents=True, exist_ok=True)
            scratch = tempfile.TemporaryDirectory(dir=temp_root, prefix=prefix)
        except OSError as e:
            raise LocalIOError(f"Cannot create scratch directory in {temp_root}: {e}") from e
        with scratch as name:
            yield Path(name)
