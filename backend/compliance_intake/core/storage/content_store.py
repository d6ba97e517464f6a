"""
Content Store.

Content-addressed document storage on top of a single bucket. Every blob
lives at ``{tenant}/{entityType}/{entityId}/{category}/v{version}/{sha256}.{ext}``
(see storage_path_service), so a key alone tells who owns the blob and what it
is.

Every operation first checks that the bucket is reachable and fails fast with
``StorageError`` if it is not. Nothing silently becomes a no-op.

Usage:
    from compliance_intake.core.storage.content_store import get_content_store

    store = get_content_store()
    path = store.upload(content, tenant_id, "project", project_id, "PRL", 1, filename="plan.pdf")
    data = store.download(path)
    url = store.signed_url(path, ttl_seconds=600)
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Iterator, Optional, Union
from uuid import UUID

from ...config import settings
from ..errors import StorageError
from .object_store import InMemoryObjectStore, ObjectInfo, ObjectStore
from .storage_path_service import (
    compute_sha256,
    content_path,
    file_extension,
    platform_staging_path,
    tenant_of,
)

logger = logging.getLogger("compliance.storage")


class ContentStore:
    """
    Upload/download/move/copy/delete/signed-URL over one bucket.

    Args:
        object_store: Backend implementation (MinIO or in-memory)
        bucket: Bucket holding every document blob
        default_ttl_seconds: Signed URL lifetime when none is given
    """

    def __init__(self, object_store: ObjectStore, bucket: str, default_ttl_seconds: int = 3600):
        self.object_store = object_store
        self.bucket = bucket
        self.default_ttl_seconds = default_ttl_seconds

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _ensure_reachable(self) -> None:
        try:
            available = self.object_store.bucket_exists(self.bucket)
        except Exception as e:
            logger.error(f"Object store unreachable (bucket={self.bucket}): {e}")
            raise StorageError(f"Object store unreachable: {e}") from e
        if not available:
            raise StorageError(f"Bucket {self.bucket} does not exist")

    def is_available(self) -> bool:
        try:
            self._ensure_reachable()
        except StorageError:
            return False
        return True

    @contextmanager
    def _operation(self, operation: str, path: str) -> Iterator[None]:
        self._ensure_reachable()
        try:
            yield
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed for {self.bucket}/{path}: {e}")
            raise StorageError(f"{operation} failed for {path}: {e}") from e

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def upload(
        self,
        content: bytes,
        tenant_id: Union[str, UUID],
        entity_type: str,
        entity_id: Union[str, UUID],
        category: str,
        version: int,
        filename: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        """
        Store ``content`` under its content-addressed key.

        Args:
            content: File bytes
            tenant_id: Owning tenant
            entity_type: Placement kind
            entity_id: Placement id
            category: Document category
            version: Version within the slot
            filename: Original filename, used for the extension only
            content_type: MIME type stored with the object

        Returns:
            Object key of the stored blob
        """
        path = content_path(
            tenant_id,
            entity_type,
            entity_id,
            category,
            version,
            compute_sha256(content),
            file_extension(filename),
        )
        with self._operation("upload", path):
            self.object_store.put_object(self.bucket, path, content, content_type)
        return path

    def download(self, path: str) -> bytes:
        """
        Raises:
            ObjectNotFoundError: If nothing is stored at ``path``
            StorageError: On any other storage failure
        """
        with self._operation("download", path):
            return self.object_store.get_object(self.bucket, path)

    def move(
        self,
        path: str,
        target_platform: str,
        document_id: Optional[Union[str, UUID]] = None,
    ) -> str:
        """
        Stage a blob into the platform area for a portal upload.

        Implemented as download then upload; the source object is kept so the
        canonical blob stays where the document record points.

        Args:
            path: Source object key
            target_platform: Portal the copy is staged for
            document_id: Document the blob belongs to (defaults to the hash
                component of the source key)

        Returns:
            Key of the staged copy
        """
        source = PurePosixPath(path)
        with self._operation("move", path):
            new_path = platform_staging_path(
                tenant_of(path),
                target_platform,
                document_id or source.stem,
                source.name,
            )
            data = self.object_store.get_object(self.bucket, path)
            info = self.object_store.get_object_info(self.bucket, path)
            content_type = info.content_type if info and info.content_type else "application/octet-stream"
            self.object_store.put_object(self.bucket, new_path, data, content_type)
        logger.info(f"Staged {path} for {target_platform} at {new_path}")
        return new_path

    def copy(self, src: str, dst: str) -> str:
        with self._operation("copy", src):
            self.object_store.copy_object(self.bucket, src, dst)
        return dst

    def delete(self, path: str) -> bool:
        """
        Returns:
            True if an object was removed, False if nothing was stored there
        """
        with self._operation("delete", path):
            if self.object_store.get_object_info(self.bucket, path) is None:
                return False
            self.object_store.delete_object(self.bucket, path)
        logger.info(f"Deleted blob {path}")
        return True

    def signed_url(self, path: str, ttl_seconds: Optional[int] = None) -> Optional[str]:
        """
        Time-limited download URL for ``path``.

        Returns:
            The URL, or None when no object exists at ``path``
        """
        with self._operation("signed_url", path):
            if self.object_store.get_object_info(self.bucket, path) is None:
                return None
            return self.object_store.get_presigned_get_url(
                self.bucket, path, ttl_seconds or self.default_ttl_seconds
            )

    def exists(self, path: str) -> bool:
        with self._operation("exists", path):
            return self.object_store.get_object_info(self.bucket, path) is not None

    def info(self, path: str) -> Optional[ObjectInfo]:
        with self._operation("info", path):
            return self.object_store.get_object_info(self.bucket, path)


# =============================================================================
# SINGLETON SERVICE
# =============================================================================


@lru_cache()
def get_content_store() -> ContentStore:
    """
    Get the singleton content store for the configured backend.

    ``STORAGE_BACKEND=memory`` gives a process-local store with the bucket
    already created; anything else uses MinIO.
    """
    if settings.storage_backend == "memory":
        object_store: ObjectStore = InMemoryObjectStore(buckets=[settings.minio_bucket])
    else:
        from .minio_service import MinIOService

        object_store = MinIOService()

    return ContentStore(
        object_store=object_store,
        bucket=settings.minio_bucket,
        default_ttl_seconds=settings.signed_url_ttl_seconds,
    )


