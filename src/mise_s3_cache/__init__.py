"""mise-s3-cache: remote S3 cache for mise-installed tool versions.

Public API::

    from mise_s3_cache import (
        CacheConfig, load_config, validate_settings,
        CacheManager, StatsStore,
        CacheMetadata, CacheStats, ToolStats, ToolSpec, MissReason,
        create_object_store, S3ObjectStore, FileObjectStore, MemoryObjectStore,
        MiseManifest, MiseInstaller, TarArchiveCodec,
        CacheKeys, derive_key,
    )
"""

from __future__ import annotations

from mise_s3_cache.archive import TarArchiveCodec
from mise_s3_cache.core.config import CacheConfig, ObservabilityConfig, load_config
from mise_s3_cache.core.exceptions import CacheError
from mise_s3_cache.core.startup_checks import validate_settings
from mise_s3_cache.installer import MiseInstaller
from mise_s3_cache.key_strategy import CacheKeys, derive_key
from mise_s3_cache.manifest import MiseManifest
from mise_s3_cache.models import (
    AnalysisReport,
    CacheMetadata,
    CacheStats,
    InstalledTool,
    MissReason,
    StoreStatus,
    ToolSpec,
    ToolStats,
    WarmReport,
)
from mise_s3_cache.persistence import (
    FileObjectStore,
    MemoryObjectStore,
    create_object_store,
)
from mise_s3_cache.persistence.s3_backend import S3ObjectStore
from mise_s3_cache.services import CacheManager, StatsStore

__version__ = "0.1.0"

__all__ = [
    "AnalysisReport",
    "CacheConfig",
    "CacheError",
    "CacheKeys",
    "CacheManager",
    "CacheMetadata",
    "CacheStats",
    "FileObjectStore",
    "InstalledTool",
    "MemoryObjectStore",
    "MiseInstaller",
    "MiseManifest",
    "MissReason",
    "ObservabilityConfig",
    "S3ObjectStore",
    "StatsStore",
    "StoreStatus",
    "TarArchiveCodec",
    "ToolSpec",
    "ToolStats",
    "WarmReport",
    "create_object_store",
    "derive_key",
    "load_config",
    "validate_settings",
]
