"""Input validation for tool names, versions, bucket names and key segments."""

from __future__ import annotations

import re

_TOOL_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_VERSION_RE = re.compile(r"^[A-Za-z0-9.+-]+$")
_BUCKET_CHARS_RE = re.compile(r"^[a-z0-9.-]+$")
_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
_UNSAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]")

MAX_TOOL_NAME_LENGTH = 100
MAX_VERSION_LENGTH = 50


def is_valid_tool_name(name: str) -> bool:
    """Alphanumerics plus ``.``, ``_`` and ``-``; 1 to 100 characters."""
    if not name or len(name) > MAX_TOOL_NAME_LENGTH:
        return False
    return bool(_TOOL_NAME_RE.fullmatch(name))


def is_valid_version(version: str) -> bool:
    """Alphanumerics plus ``.``, ``+`` and ``-`` (semver-friendly); 1 to 50 characters."""
    if not version or len(version) > MAX_VERSION_LENGTH:
        return False
    return bool(_VERSION_RE.fullmatch(version))


def is_valid_s3_bucket_name(name: str) -> bool:
    """Check a bucket name against the AWS naming rules."""
    if len(name) < 3 or len(name) > 63:
        return False
    if not (name[0].islower() or name[0].isdigit()):
        return False
    if not (name[-1].islower() or name[-1].isdigit()):
        return False
    if not _BUCKET_CHARS_RE.fullmatch(name):
        return False
    if ".." in name or ".-" in name or "-." in name:
        return False
    if _IPV4_RE.fullmatch(name):
        return False
    return True


def sanitize_path_component(value: str) -> str:
    """Replace anything outside ``[A-Za-z0-9._-]`` with ``-``."""
    return _UNSAFE_SEGMENT_RE.sub("-", value)
