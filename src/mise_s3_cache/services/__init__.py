"""Cache workflows and local statistics."""

from __future__ import annotations

from mise_s3_cache.services.cache_manager import CacheManager, validate_tool_version
from mise_s3_cache.services.stats_store import StatsStore

__all__ = ["CacheManager", "StatsStore", "validate_tool_version"]
