"""Project tool manifest readers."""

from __future__ import annotations

from mise_s3_cache.manifest.mise_manifest import (
    MiseManifest,
    parse_mise_ls_json,
    parse_mise_toml_text,
    parse_tool_versions_text,
)
from mise_s3_cache.manifest.protocols import IToolManifest

__all__ = [
    "IToolManifest",
    "MiseManifest",
    "parse_mise_ls_json",
    "parse_mise_toml_text",
    "parse_tool_versions_text",
]
