"""In-memory object store: dict-backed, ideal for tests."""

from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Iterator

from mise_s3_cache.core.exceptions import LocalIOError, ObjectNotFoundError, TransportError
from mise_s3_cache.persistence.base import BaseObjectStore
from mise_s3_cache.persistence.protocols import ObjectInfo

log = logging.getLogger(__name__)


@dataclasses.dataclass
class _StoredObject:
    data: bytes
    last_modified: float = dataclasses.field(default_factory=time.time)


class MemoryObjectStore(BaseObjectStore):
    """Stores objects in a plain dict; nothing touches the network."""

    def __init__(self, prefix: str = "mise-cache") -> None:
        self._objects: dict[str, _StoredObject] = {}
        self.check_prefix = prefix

    def exists(self, key: str) -> bool:
        return key in self._objects

    def upload_file(self, local_path: Path, key: str) -> None:
        self._objects[key] = _StoredObject(local_path.read_bytes())
        log.debug("Saved %s to memory store", key)

    def upload_string(self, content: str, key: str) -> None:
        self._objects[key] = _StoredObject(content.encode("utf-8"))
        log.debug("Saved %s to memory store", key)

    def download_file(self, key: str, local_path: Path) -> None:
        obj = self._get(key)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            local_path.write_bytes(obj.data)
        except OSError as e:
            raise LocalIOError(f"Failed to write {local_path}: {e}") from e

    def download_string(self, key: str) -> str:
        try:
            return self._get(key).data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransportError(f"Invalid UTF-8 in object {key}") from e

    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        for key in sorted(self._objects):
            if key.startswith(prefix):
                obj = self._objects[key]
                yield ObjectInfo(key=key, size=len(obj.data), last_modified=obj.last_modified)

    def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def object_size(self, key: str) -> int:
        return len(self._get(key).data)

    def _get(self, key: str) -> _StoredObject:
        if key not in self._objects:
            raise ObjectNotFoundError(key)
        return self._objects[key]
