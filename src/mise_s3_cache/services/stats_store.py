"""JSON file persistence for cache usage statistics.

Every outcome is a full read-modify-write of one file with no locking.
Two processes recording at once can lose an update; statistics are
advisory, so that race is accepted.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from mise_s3_cache.core.exceptions import LocalIOError
from mise_s3_cache.models import CacheStats, MissReason, ToolStats
from mise_s3_cache.utils.system import current_timestamp

log = logging.getLogger(__name__)


class StatsStore:
    """Load, update and save ``CacheStats`` at a fixed path."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CacheStats:
        """Return the persisted stats, or an empty aggregate if missing or corrupt."""
        if not self._path.is_file():
            return CacheStats()
        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise LocalIOError(f"Failed to read stats file {self._path}: {e}") from e

        try:
            return CacheStats.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError):
            log.warning("Ignoring unreadable stats file %s", self._path)
            return CacheStats()

    def save(self, stats: CacheStats) -> None:
        """Overwrite the stats file via a temp file + rename."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".stats-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(stats.model_dump_json(indent=2))
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise LocalIOError(f"Failed to write stats file {self._path}: {e}") from e

    def record_outcome(
        self,
        tool: str,
        version: str,
        *,
        hit: bool,
        duration_ms: int = 0,
        reason: MissReason | None = None,
        size_bytes: int = 0,
    ) -> CacheStats:
        """Count one restore outcome for ``tool@version`` and persist it.

        On a hit, *duration_ms* feeds the running average and *size_bytes*
        (the restored archive size) is added to ``total_savings_bytes``.
        """
        stats = self.load()
        now = current_timestamp()

        stats.total_downloads += 1
        tool_stats = stats.tools.setdefault(f"{tool}@{version}", ToolStats(last_used=now))
        tool_stats.last_used = now

        if hit:
            stats.cache_hits += 1
            stats.total_savings_bytes += size_bytes
            tool_stats.cache_hits += 1
            tool_stats.total_download_time_ms += duration_ms
            tool_stats.average_download_time_ms = (
                tool_stats.total_download_time_ms // tool_stats.cache_hits
            )
            tool_stats.size_bytes = size_bytes
        else:
            stats.cache_misses += 1
            tool_stats.cache_misses += 1

        log.debug(
            "Recorded %s for %s@%s%s",
            "hit" if hit else "miss",
            tool,
            version,
            f" ({reason.value})" if reason is not None else "",
        )
        self.save(stats)
        return stats
