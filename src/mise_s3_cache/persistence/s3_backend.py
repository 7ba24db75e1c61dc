"""S3 object store backend built on a boto3 client."""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from botocore.exceptions import BotoCoreError, ClientError

from mise_s3_cache.core.exceptions import LocalIOError, ObjectNotFoundError, TransportError
from mise_s3_cache.persistence.base import BaseObjectStore
from mise_s3_cache.persistence.protocols import ObjectInfo

log = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


@contextmanager
def _s3_errors(action: str, key: str) -> Iterator[None]:
    """Translate botocore failures into the cache's transport errors."""
    try:
        yield
    except ClientError as e:
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in _NOT_FOUND_CODES:
            raise ObjectNotFoundError(key) from e
        raise TransportError(f"Failed to {action} {key}: {e}") from e
    except BotoCoreError as e:
        raise TransportError(f"Failed to {action} {key}: {e}") from e


class S3ObjectStore(BaseObjectStore):
    """Stores cache objects in an S3 (or S3-compatible) bucket.

    Keys are used as-is; the configured prefix is already part of every
    cache key and is only used here for the connectivity check.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "mise-cache",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self.check_prefix = prefix

        if client is None:
            try:
                import boto3 as _boto3
            except ImportError as e:
                raise ImportError(
                    "boto3 is required for the S3 backend. "
                    "Install with: pip install mise-s3-cache"
                ) from e
            if endpoint_url:
                log.debug("Using custom S3 endpoint: %s", endpoint_url)
            client = _boto3.client("s3", region_name=region, endpoint_url=endpoint_url or None)
        self._s3 = client

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def region(self) -> str:
        return self._region

    def exists(self, key: str) -> bool:
        try:
            with _s3_errors("check", key):
                self._s3.head_object(Bucket=self._bucket, Key=key)
        except ObjectNotFoundError:
            return False
        return True

    def upload_file(self, local_path: Path, key: str) -> None:
        log.debug("Uploading %s to s3://%s/%s", local_path, self._bucket, key)
        size = local_path.stat().st_size
        with local_path.open("rb") as body, _s3_errors("upload", key):
            self._s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentLength=size,
            )
        log.debug("Uploaded %s (%d bytes)", key, size)

    def upload_string(self, content: str, key: str) -> None:
        log.debug("Uploading string content to s3://%s/%s", self._bucket, key)
        data = content.encode("utf-8")
        with _s3_errors("upload", key):
            self._s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentLength=len(data),
            )

    def download_file(self, key: str, local_path: Path) -> None:
        log.debug("Downloading s3://%s/%s to %s", self._bucket, key, local_path)
        with _s3_errors("download", key):
            response = self._s3.get_object(Bucket=self._bucket, Key=key)

        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            with local_path.open("wb") as fh, _s3_errors("download", key):
                shutil.copyfileobj(response["Body"], fh)
        except TransportError:
            local_path.unlink(missing_ok=True)
            raise
        except OSError as e:
            raise LocalIOError(f"Failed to write {local_path}: {e}") from e

    def download_string(self, key: str) -> str:
        log.debug("Downloading string from s3://%s/%s", self._bucket, key)
        with _s3_errors("download", key):
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
            data = response["Body"].read()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransportError(f"Invalid UTF-8 in S3 object {key}") from e

    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        paginator = self._s3.get_paginator("list_objects_v2")
        with _s3_errors("list objects with prefix", prefix):
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield ObjectInfo(
                        key=obj["Key"],
                        size=int(obj.get("Size", 0)),
                        last_modified=obj["LastModified"].timestamp(),
                    )

    def delete(self, key: str) -> None:
        log.debug("Deleting s3://%s/%s", self._bucket, key)
        with _s3_errors("delete", key):
            self._s3.delete_object(Bucket=self._bucket, Key=key)

    def object_size(self, key: str) -> int:
        with _s3_errors("get metadata for", key):
            response = self._s3.head_object(Bucket=self._bucket, Key=key)
        return int(response.get("ContentLength", 0))
