"""Startup validation: fail-fast on critical misconfigurations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mise_s3_cache.core.exceptions import ConfigError
from mise_s3_cache.utils.validation import is_valid_s3_bucket_name

if TYPE_CHECKING:
    from mise_s3_cache.core.config import CacheConfig

log = logging.getLogger(__name__)


def validate_settings(config: CacheConfig) -> None:
    """Validate cache settings at startup. Raises ConfigError on fatal misconfig."""
    _check_bucket(config)
    _check_region(config)
    _check_prefix(config)
    _check_compression(config)


def _check_bucket(config: CacheConfig) -> None:
    """Only the S3 backend needs a bucket."""
    if config.backend != "s3":
        return
    if not config.bucket:
        raise ConfigError(
            "S3 bucket not configured. Set MISE_S3_CACHE_BUCKET environment variable"
        )
    if not is_valid_s3_bucket_name(config.bucket):
        raise ConfigError(f"Invalid S3 bucket name: {config.bucket}")


def _check_region(config: CacheConfig) -> None:
    if not config.region:
        raise ConfigError("S3 region cannot be empty")


def _check_prefix(config: CacheConfig) -> None:
    if config.prefix.startswith("/") or "//" in config.prefix:
        raise ConfigError(f"Invalid S3 prefix: {config.prefix}")


def _check_compression(config: CacheConfig) -> None:
    """Warn when archives would be stored uncompressed."""
    if config.compression == "none":
        log.warning(
            "MISE_S3_CACHE_COMPRESSION=none: archives are uploaded uncompressed. "
            "Expect larger objects and slower restores."
        )
