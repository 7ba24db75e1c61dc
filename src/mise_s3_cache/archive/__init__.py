"""Archive codec for packing and unpacking install trees."""

from __future__ import annotations

from mise_s3_cache.archive.codec import Compression, TarArchiveCodec

__all__ = ["Compression", "TarArchiveCodec"]
