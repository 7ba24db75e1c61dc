"""Host introspection and small formatting helpers."""

from __future__ import annotations

import os
import platform
import sys
import time
from pathlib import Path

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}

_CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BITBUCKET_BUILD_NUMBER",
    "JENKINS_URL",
    "BUILDKITE",
)

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def get_platform() -> str:
    """Return ``linux``, ``darwin``, ``windows`` or ``unknown``."""
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform in ("win32", "cygwin"):
        return "windows"
    return "unknown"


def get_architecture() -> str:
    """Return ``x86_64``, ``aarch64``, ``arm`` or ``unknown``."""
    machine = platform.machine().lower()
    if machine in _ARCH_ALIASES:
        return _ARCH_ALIASES[machine]
    if machine.startswith("arm"):
        return "arm"
    return "unknown"


def is_ci_environment() -> bool:
    return any(var in os.environ for var in _CI_ENV_VARS)


def current_timestamp() -> int:
    """Seconds since the Unix epoch."""
    return int(time.time())


def human_readable_size(num_bytes: int) -> str:
    """Format a byte count, e.g. ``512 B``, ``1.5 KB``, ``1.0 GB``."""
    if num_bytes <= 0:
        return "0 B"

    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1

    if unit == 0:
        return f"{int(size)} {_SIZE_UNITS[0]}"
    return f"{size:.1f} {_SIZE_UNITS[unit]}"


def find_project_root(start: Path) -> Path | None:
    """Walk up from *start* to the first directory containing ``.git``."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def directory_size(path: Path) -> int:
    """Total size in bytes of regular files under *path* (symlinks not followed)."""
    if path.is_file():
        return path.stat().st_size

    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = Path(root) / name
            if not file_path.is_symlink():
                total += file_path.stat().st_size
    return total
