"""Pluggable object store backends: factory + implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mise_s3_cache.persistence.file_backend import FileObjectStore
from mise_s3_cache.persistence.memory_backend import MemoryObjectStore
from mise_s3_cache.persistence.protocols import IObjectStore, ObjectInfo

if TYPE_CHECKING:
    from mise_s3_cache.core.config import CacheConfig

__all__ = [
    "create_object_store",
    "FileObjectStore",
    "IObjectStore",
    "MemoryObjectStore",
    "ObjectInfo",
]


def create_object_store(config: CacheConfig) -> IObjectStore:
    """Create the object store selected by ``config.backend``."""
    backend = config.backend
    if backend == "s3":
        from mise_s3_cache.persistence.s3_backend import S3ObjectStore

        return S3ObjectStore(
            bucket=config.bucket,
            prefix=config.prefix,
            region=config.region,
            endpoint_url=config.endpoint_url,
        )
    elif backend == "file":
        return FileObjectStore(config.store_path, prefix=config.prefix)
    elif backend == "memory":
        return MemoryObjectStore(prefix=config.prefix)
    else:
        raise ValueError(f"Unknown object store backend: {backend!r}")
