"""
Object store backends.

``ObjectStore`` is the single storage abstraction the content store talks
to. Two implementations exist:

- ``MinIOService`` (minio_service.py): S3-compatible storage for deployments
- ``InMemoryObjectStore`` (here): process-local dict for tests and local runs

Backends raise ``ObjectNotFoundError`` for missing keys and let every other
client error propagate; the content store turns those into ``StorageError``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple

from ..errors import ObjectNotFoundError

logger = logging.getLogger("compliance.object_store")


@dataclass
class ObjectInfo:
    """Information about an object in storage."""
    key: str
    size: int
    content_type: Optional[str]
    etag: str


class ObjectStore(ABC):
    """Minimal object storage surface used by the content store."""

    @abstractmethod
    def bucket_exists(self, bucket: str) -> bool:
        ...

    @abstractmethod
    def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        """Store ``data`` and return its ETag."""

    @abstractmethod
    def get_object(self, bucket: str, key: str) -> bytes:
        """Return object content or raise ObjectNotFoundError."""

    @abstractmethod
    def get_object_info(self, bucket: str, key: str) -> Optional[ObjectInfo]:
        """Return object metadata, or None if the key does not exist."""

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        ...

    @abstractmethod
    def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        ...

    @abstractmethod
    def get_presigned_get_url(self, bucket: str, key: str, expires_seconds: int) -> str:
        ...


class InMemoryObjectStore(ObjectStore):
    """
    Dict-backed object store.

    Args:
        buckets: Buckets that exist from the start
        reachable: When False every call fails as if the server were down
    """

    def __init__(self, buckets: Iterable[str] = (), reachable: bool = True):
        self._lock = threading.Lock()
        self._objects: Dict[str, Dict[str, Tuple[bytes, str]]] = {b: {} for b in buckets}
        self.reachable = reachable

    def _bucket(self, bucket: str) -> Dict[str, Tuple[bytes, str]]:
        if not self.reachable:
            raise ConnectionError("in-memory object store is offline")
        if bucket not in self._objects:
            raise ObjectNotFoundError(f"Bucket {bucket} does not exist")
        return self._objects[bucket]

    def make_bucket(self, bucket: str) -> None:
        with self._lock:
            self._objects.setdefault(bucket, {})

    def bucket_exists(self, bucket: str) -> bool:
        if not self.reachable:
            raise ConnectionError("in-memory object store is offline")
        return bucket in self._objects

    def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        with self._lock:
            self._bucket(bucket)[key] = (bytes(data), content_type)
        return f"{len(data)}-{key}"

    def get_object(self, bucket: str, key: str) -> bytes:
        with self._lock:
            objects = self._bucket(bucket)
            if key not in objects:
                raise ObjectNotFoundError(f"{bucket}/{key} not found")
            return objects[key][0]

    def get_object_info(self, bucket: str, key: str) -> Optional[ObjectInfo]:
        with self._lock:
            entry = self._bucket(bucket).get(key)
        if entry is None:
            return None
        data, content_type = entry
        return ObjectInfo(key=key, size=len(data), content_type=content_type, etag=f"{len(data)}-{key}")

    def delete_object(self, bucket: str, key: str) -> None:
        with self._lock:
            self._bucket(bucket).pop(key, None)

    def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        with self._lock:
            objects = self._bucket(bucket)
            if source_key not in objects:
                raise ObjectNotFoundError(f"{bucket}/{source_key} not found")
            objects[dest_key] = objects[source_key]

    def get_presigned_get_url(self, bucket: str, key: str, expires_seconds: int) -> str:
        self._bucket(bucket)
        expires_at = datetime.utcnow() + timedelta(seconds=expires_seconds)
        return f"memory://{bucket}/{key}?expires={int(expires_at.timestamp())}"

    def keys(self, bucket: str) -> list:
        with self._lock:
            return sorted(self._bucket(bucket))
