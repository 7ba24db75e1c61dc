"""Tests for startup validation checks."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from mise_s3_cache.core.config import CacheConfig
from mise_s3_cache.core.exceptions import ConfigError
from mise_s3_cache.core.startup_checks import validate_settings


class TestBucketCheck:
    def test_requires_bucket_for_s3(self) -> None:
        with pytest.raises(ConfigError, match="MISE_S3_CACHE_BUCKET"):
            validate_settings(CacheConfig(backend="s3"))

    def test_rejects_invalid_bucket(self) -> None:
        with pytest.raises(ConfigError, match="Invalid S3 bucket name"):
            validate_settings(CacheConfig(bucket="Bad_Bucket"))

    def test_local_backends_need_no_bucket(self) -> None:
        validate_settings(CacheConfig(backend="file"))
        validate_settings(CacheConfig(backend="memory"))

    def test_accepts_valid_config(self) -> None:
        validate_settings(CacheConfig(bucket="team-tool-cache"))  # Should not raise


class TestRegionAndPrefix:
    def test_empty_region(self) -> None:
        with pytest.raises(ConfigError, match="region"):
            validate_settings(CacheConfig(bucket="team-tool-cache", region=""))

    @pytest.mark.parametrize("prefix", ["/leading", "double//slash"])
    def test_bad_prefix(self, prefix: str) -> None:
        with pytest.raises(ConfigError, match="Invalid S3 prefix"):
            validate_settings(CacheConfig(bucket="team-tool-cache", prefix=prefix))


class TestCompressionCheck:
    def test_warns_when_uncompressed(self) -> None:
        with patch("mise_s3_cache.core.startup_checks.log") as mock_log:
            validate_settings(CacheConfig(bucket="team-tool-cache", compression="none"))
            mock_log.warning.assert_called_once()

    def test_silent_when_compressed(self) -> None:
        with patch("mise_s3_cache.core.startup_checks.log") as mock_log:
            validate_settings(CacheConfig(bucket="team-tool-cache"))
            mock_log.warning.assert_not_called()
