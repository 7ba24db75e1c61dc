"""Pydantic data models for mise-s3-cache.

``CacheMetadata`` is the ``metadata.json`` object stored next to each
archive. ``CacheStats``/``ToolStats`` are the local usage statistics file.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class MissReason(str, Enum):
    """Why a restore did not produce an installed tree."""

    NOT_FOUND = "not_found"
    DOWNLOAD_FAILED = "download_failed"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    EXTRACTION_FAILED = "extraction_failed"


class CacheMetadata(BaseModel):
    """Descriptive record written alongside every cached archive."""

    tool: str
    version: str
    platform: str
    arch: str
    created_at: int
    size_bytes: int
    checksum: str
    mise_version: str = "unknown"
    compressed: bool = True


class ToolStats(BaseModel):
    """Per ``tool@version`` usage counters."""

    last_used: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    total_download_time_ms: int = 0
    average_download_time_ms: int = 0
    size_bytes: int = 0


class CacheStats(BaseModel):
    """Process-wide aggregate persisted to the stats file."""

    cache_hits: int = 0
    cache_misses: int = 0
    total_downloads: int = 0
    total_savings_bytes: int = 0
    tools: dict[str, ToolStats] = Field(default_factory=dict)

    @property
    def hit_rate(self) -> float | None:
        """Hit percentage, or None before the first download."""
        if self.total_downloads == 0:
            return None
        return self.cache_hits / self.total_downloads * 100


class ToolSpec(BaseModel):
    """A ``(tool, version)`` pair declared by a project."""

    model_config = {"frozen": True}

    tool: str
    version: str

    def __str__(self) -> str:
        return f"{self.tool}@{self.version}"


class InstalledTool(BaseModel):
    """A declared tool that is present on disk."""

    tool: str
    version: str
    install_path: str


class AnalysisReport(BaseModel):
    """Declared-vs-cached breakdown for the current project."""

    cached: list[ToolSpec] = Field(default_factory=list)
    missing: list[ToolSpec] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cached) + len(self.missing)

    @property
    def hit_rate_percent(self) -> int:
        """Integer percentage of declared tools already cached."""
        if self.total == 0:
            return 0
        return len(self.cached) * 100 // self.total


class WarmReport(BaseModel):
    """Outcome of a cache-warming run."""

    already_cached: list[ToolSpec] = Field(default_factory=list)
    stored: list[ToolSpec] = Field(default_factory=list)
    failed: list[ToolSpec] = Field(default_factory=list)


class StoreStatus(BaseModel):
    """Summary of the remote store for ``status``."""

    region: str
    bucket: str
    prefix: str
    connected: bool
    error: str = ""
    cache_size_bytes: int | None = None
    object_count: int | None = None
