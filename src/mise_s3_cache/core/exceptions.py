"""Exception hierarchy for mise-s3-cache.

A plain cache miss is never an exception: ``check`` and ``restore`` report
misses through their boolean result. Everything here is a genuine failure.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base exception for all mise-s3-cache errors."""


class InvalidInputError(CacheError):
    """Malformed tool name, version or bucket name. Raised before any I/O."""


class PathNotFoundError(CacheError):
    """A local path that must exist (e.g. the install dir to cache) is missing."""


class TransportError(CacheError):
    """Network, auth or permission failure against the remote store."""


class ObjectNotFoundError(TransportError):
    """The requested object key does not exist in the store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class IntegrityError(CacheError):
    """Downloaded archive does not match its stored checksum."""

    def __init__(self, message: str, expected: str = "", actual: str = "") -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class LocalIOError(CacheError):
    """Local filesystem failure (scratch space, stats file, install dir)."""


class ArchiveError(LocalIOError):
    """Packing or unpacking an install tree failed."""


class ConfigError(CacheError):
    """Configuration is missing or invalid."""


class InstallerError(CacheError):
    """The external tool installer failed or is unavailable."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class ManifestError(CacheError):
    """A project tool manifest could not be read."""


__all__ = [
    "CacheError",
    "InvalidInputError",
    "PathNotFoundError",
    "TransportError",
    "ObjectNotFoundError",
    "IntegrityError",
    "LocalIOError",
    "ArchiveError",
    "ConfigError",
    "InstallerError",
    "ManifestError",
]
