"""
MinIO-backed ``ObjectStore``.

Document blobs live in a single bucket under tenant-scoped keys built by the
content store. This adapter only speaks the S3 API: it translates the
"missing key" family of S3 errors into ``ObjectNotFoundError`` and lets every
other ``S3Error`` propagate so the content store can report it as a storage
outage.
"""

import logging
from datetime import timedelta
from io import BytesIO
from typing import Optional

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error

from ...config import settings
from ..errors import ObjectNotFoundError
from .object_store import ObjectInfo, ObjectStore

logger = logging.getLogger("compliance.minio")

_ABSENT = frozenset({"NoSuchKey", "NoSuchObject"})


def _is_absent(exc: S3Error) -> bool:
    return exc.code in _ABSENT


class MinIOService(ObjectStore):
    """Object store for MinIO or any S3-compatible endpoint (MINIO_* settings)."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: Optional[bool] = None,
    ):
        self.endpoint = endpoint or settings.minio_endpoint
        self._credentials = (
            access_key or settings.minio_access_key,
            secret_key or settings.minio_secret_key,
        )
        self.secure = settings.minio_secure if secure is None else secure
        self._client: Optional[Minio] = None

    @property
    def client(self) -> Minio:
        # Built on first use; constructing the service never touches the network.
        if self._client is None:
            access_key, secret_key = self._credentials
            self._client = Minio(self.endpoint, access_key=access_key, secret_key=secret_key, secure=self.secure)
            logger.info(f"Connected document storage to {self.endpoint} (tls={self.secure})")
        return self._client

    def prepare_bucket(self, bucket: str) -> bool:
        """
        Make sure the document bucket exists.

        Returns True when the bucket had to be created.
        """
        if self.client.bucket_exists(bucket):
            return False
        self.client.make_bucket(bucket)
        logger.info(f"Created document bucket '{bucket}'")
        return True

    def bucket_exists(self, bucket: str) -> bool:
        return self.client.bucket_exists(bucket)

    def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        written = self.client.put_object(bucket, key, BytesIO(data), len(data), content_type=content_type)
        logger.debug(f"Stored blob {key} in '{bucket}' ({len(data)} bytes, {content_type})")
        return written.etag

    def get_object(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(bucket, key)
        except S3Error as exc:
            if _is_absent(exc):
                raise ObjectNotFoundError(f"Blob {key} is missing from '{bucket}'") from exc
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def get_object_info(self, bucket: str, key: str) -> Optional[ObjectInfo]:
        try:
            stat = self.client.stat_object(bucket, key)
        except S3Error as exc:
            if _is_absent(exc):
                return None
            raise
        return ObjectInfo(key=key, size=stat.size, content_type=stat.content_type, etag=(stat.etag or "").strip('"'))

    def delete_object(self, bucket: str, key: str) -> None:
        # S3 deletes are idempotent; a blob that is already gone is fine.
        try:
            self.client.remove_object(bucket, key)
        except S3Error as exc:
            if not _is_absent(exc):
                raise
            return
        logger.debug(f"Removed blob {key} from '{bucket}'")

    def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        try:
            self.client.copy_object(bucket, dest_key, CopySource(bucket, source_key))
        except S3Error as exc:
            if _is_absent(exc):
                raise ObjectNotFoundError(f"Blob {source_key} is missing from '{bucket}'") from exc
            raise
        logger.debug(f"Copied blob {source_key} to {dest_key} in '{bucket}'")

    def get_presigned_get_url(self, bucket: str, key: str, expires_seconds: int) -> str:
        return self.client.presigned_get_object(bucket, key, expires=timedelta(seconds=expires_seconds))
