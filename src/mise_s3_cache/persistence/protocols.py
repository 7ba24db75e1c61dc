"""Object store protocol: the capability set the cache manager relies on."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable


@dataclasses.dataclass(frozen=True)
class ObjectInfo:
    """A listed object: key, size in bytes, last-modified unix timestamp."""

    key: str
    size: int
    last_modified: float


@runtime_checkable
class IObjectStore(Protocol):
    """Protocol for object store backends (S3, local directory, memory).

    Backends are synchronous. Not-found is a normal ``False`` from
    ``exists``; every other failure raises ``TransportError``.
    """

    def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        ...

    def upload_file(self, local_path: Path, key: str) -> None:
        """Upload a local file, overwriting any existing object."""
        ...

    def upload_string(self, content: str, key: str) -> None:
        """Upload UTF-8 text, overwriting any existing object."""
        ...

    def download_file(self, key: str, local_path: Path) -> None:
        """Download an object to a local file. Raises ObjectNotFoundError if absent."""
        ...

    def download_string(self, key: str) -> str:
        """Download an object as UTF-8 text. Raises ObjectNotFoundError if absent."""
        ...

    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        """Yield every object under *prefix*, walking pagination."""
        ...

    def list_objects(self, prefix: str) -> list[str]:
        """All keys under *prefix* as a complete list."""
        ...

    def delete(self, key: str) -> None:
        """Delete an object (no-op if absent)."""
        ...

    def object_size(self, key: str) -> int:
        """Size of one object in bytes."""
        ...

    def total_size(self, prefix: str) -> int:
        """Sum of object sizes under *prefix*."""
        ...

    def cleanup_older_than(self, prefix: str, max_age_seconds: int) -> list[str]:
        """Delete objects last modified before ``now - max_age_seconds``; return deleted keys."""
        ...

    def test_connectivity(self) -> None:
        """Verify read and write access. Raises TransportError on failure."""
        ...
