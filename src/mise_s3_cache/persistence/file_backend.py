"""Local-directory object store: keys map to files under a base path.

Useful for a cache shared over a network filesystem, and for exercising
the full protocol offline. Last-modified times come from file mtimes.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterator

from mise_s3_cache.core.exceptions import ObjectNotFoundError, TransportError
from mise_s3_cache.persistence.base import BaseObjectStore
from mise_s3_cache.persistence.protocols import ObjectInfo

log = logging.getLogger(__name__)


class FileObjectStore(BaseObjectStore):
    """Stores each object as a file at ``base_path / key``."""

    def __init__(self, base_path: Path, prefix: str = "mise-cache") -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        self.check_prefix = prefix

    def _key_path(self, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or ".." in parts:
            raise TransportError(f"Invalid object key: {key!r}")
        return self._base.joinpath(*parts)

    def exists(self, key: str) -> bool:
        return self._key_path(key).is_file()

    def upload_file(self, local_path: Path, key: str) -> None:
        path = self._key_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, path)
        except OSError as e:
            raise TransportError(f"Failed to upload {key}: {e}") from e
        log.debug("Saved %s to %s", key, path)

    def upload_string(self, content: str, key: str) -> None:
        path = self._key_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise TransportError(f"Failed to upload {key}: {e}") from e
        log.debug("Saved %s to %s", key, path)

    def download_file(self, key: str, local_path: Path) -> None:
        path = self._key_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, local_path)
        except OSError as e:
            raise TransportError(f"Failed to download {key}: {e}") from e

    def download_string(self, key: str) -> str:
        path = self._key_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise TransportError(f"Invalid UTF-8 in object {key}") from e
        except OSError as e:
            raise TransportError(f"Failed to download {key}: {e}") from e

    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        for root, dirs, files in os.walk(self._base):
            dirs.sort()
            for name in sorted(files):
                path = Path(root) / name
                key = path.relative_to(self._base).as_posix()
                if not key.startswith(prefix):
                    continue
                stat = path.stat()
                yield ObjectInfo(key=key, size=stat.st_size, last_modified=stat.st_mtime)

    def delete(self, key: str) -> None:
        path = self._key_path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise TransportError(f"Failed to delete {key}: {e}") from e

    def object_size(self, key: str) -> int:
        path = self._key_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return path.stat().st_size
