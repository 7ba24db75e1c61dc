"""External tool installer integration."""

from __future__ import annotations

from mise_s3_cache.installer.mise_installer import MiseInstaller
from mise_s3_cache.installer.protocols import IToolInstaller

__all__ = ["IToolInstaller", "MiseInstaller"]
