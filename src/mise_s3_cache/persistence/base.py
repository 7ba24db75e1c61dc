"""Listing-derived operations shared by every object store backend."""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Iterator

from mise_s3_cache.core.exceptions import TransportError
from mise_s3_cache.persistence.protocols import ObjectInfo

log = logging.getLogger(__name__)


class BaseObjectStore(ABC):
    """Implements list/size/cleanup/connectivity on top of ``iter_objects``.

    Subclasses provide the primitive operations (exists, upload, download,
    delete, object_size, iter_objects) and set ``check_prefix``.
    """

    check_prefix: str = ""

    @abstractmethod
    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        """Yield every object whose key starts with *prefix*."""

    @abstractmethod
    def upload_string(self, content: str, key: str) -> None:
        """Store UTF-8 text under *key*."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*; absent keys are not an error."""

    def list_objects(self, prefix: str) -> list[str]:
        return [obj.key for obj in self.iter_objects(prefix)]

    def total_size(self, prefix: str) -> int:
        return sum(obj.size for obj in self.iter_objects(prefix))

    def cleanup_older_than(self, prefix: str, max_age_seconds: int) -> list[str]:
        cutoff = time.time() - max_age_seconds
        expired = [obj.key for obj in self.iter_objects(prefix) if obj.last_modified < cutoff]

        deleted: list[str] = []
        for key in expired:
            log.info("Deleting old cache entry: %s", key)
            try:
                self.delete(key)
            except TransportError as e:
                log.error("Failed to delete %s: %s", key, e)
                continue
            deleted.append(key)
        return deleted

    def test_connectivity(self) -> None:
        """List under the check prefix, then write and remove a check object."""
        next(iter(self.iter_objects(self.check_prefix)), None)

        check_key = f"{self.check_prefix}/test-{uuid.uuid4()}"
        self.upload_string("test", check_key)
        try:
            self.delete(check_key)
        except TransportError as e:
            log.debug("Could not remove connectivity check %s: %s", check_key, e)
        log.info("Store connectivity test passed")
