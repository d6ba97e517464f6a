"""
Document Registry for content-addressed, tenant-scoped document records.

The registry owns the ``documents`` table and the rule that a tenant holds at
most one document per content hash. Deduplication is decided by the database,
not by a read-then-write check: new rows are inserted with
``ON CONFLICT (tenant_id, sha256) DO NOTHING``, and an empty RETURNING result
means the content already exists under the tenant.

Registration flow:
    1. Validate the input (non-empty, accepted MIME type, size limit)
    2. Hash the bytes and compute the next version for the logical slot
       (tenant, entity_type, entity_id, category)
    3. Upload the blob to its content-addressed path
    4. Insert the row. On a hash conflict, drop the fresh blob and append a
       reupload record to the existing document; hash, version and path are
       left untouched. On any other failure, delete the blob before the
       error propagates.

Usage:
    from compliance_intake.core.registry.document_registry import document_registry

    result = await document_registry.register_or_update(
        session, ctx, Placement("project", project_id), "PRL", content,
        UploadedFile("plan.pdf", "application/pdf"),
    )
    if result.duplicate:
        ...
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ..database.models import Document
from ..errors import DuplicateContentConflict, StorageError, ValidationError
from ..models.context import Placement, TenantContext, UploadedFile
from ..models.enums import DocumentCategory, DocumentStatus
from ..models.metadata import ClassificationInfo, DocumentMetadata, ReuploadRecord
from ..shared.audit_service import audit_service
from ..storage.content_store import ContentStore, get_content_store
from ..storage.storage_path_service import compute_sha256

logger = logging.getLogger("compliance.registry")

DUPLICATE_REASON = "duplicate_hash_detected"


@dataclass
class RegistrationResult:
    """Outcome of ``register_or_update``."""
    document: Document
    duplicate: bool


class DocumentRegistry:
    """
    Service for registering and updating Document records.

    Args:
        content_store: Blob storage; defaults to the configured singleton
        max_file_size: Upper size limit in bytes
        allowed_mime_types: MIME types accepted at registration
    """

    def __init__(
        self,
        content_store: Optional[ContentStore] = None,
        max_file_size: Optional[int] = None,
        allowed_mime_types: Optional[Sequence[str]] = None,
    ):
        self._content_store = content_store
        self.max_file_size = max_file_size or settings.max_file_size
        self.allowed_mime_types = tuple(allowed_mime_types or settings.allowed_mime_types)

    @property
    def content_store(self) -> ContentStore:
        if self._content_store is None:
            self._content_store = get_content_store()
        return self._content_store

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_upload(self, content: bytes, file: UploadedFile) -> None:
        """
        Raises:
            ValidationError: If the input is not an acceptable file
        """
        if not isinstance(content, (bytes, bytearray)):
            raise ValidationError("File content must be bytes")
        if not content:
            raise ValidationError("File is empty")
        if not file.filename or not file.filename.strip():
            raise ValidationError("Filename is required")
        if file.mime_type not in self.allowed_mime_types:
            raise ValidationError(
                f"Unsupported file type {file.mime_type}; allowed: {', '.join(self.allowed_mime_types)}"
            )
        if len(content) > self.max_file_size:
            raise ValidationError(
                f"File exceeds the {self.max_file_size // (1024 * 1024)} MB limit"
            )

    # =========================================================================
    # CREATE / UPDATE OPERATIONS
    # =========================================================================

    async def register_or_update(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        placement: Placement,
        category: str,
        content: bytes,
        file: UploadedFile,
        classification: Optional[ClassificationInfo] = None,
    ) -> RegistrationResult:
        """
        Register new content or record a re-upload of known content.

        Args:
            session: Database session
            ctx: Tenant context
            placement: Entity the document is attached to
            category: Document category (unknown values become OTHER)
            content: File bytes
            file: Client-supplied filename and MIME type
            classification: Classifier output to keep in the metadata

        Returns:
            RegistrationResult with the stored document and whether it was a
            duplicate of existing content

        Raises:
            ValidationError: If the input is rejected
            StorageError: If the blob cannot be stored
        """
        self.validate_upload(content, file)
        category = DocumentCategory.coerce(category).value
        sha256 = compute_sha256(content)
        version = await self.next_version(session, ctx.tenant_id, placement, category)

        path = self.content_store.upload(
            content,
            ctx.tenant_id,
            placement.entity_type,
            placement.entity_id,
            category,
            version,
            filename=file.filename,
            content_type=file.mime_type,
        )

        metadata = DocumentMetadata(original_filename=file.filename, classification=classification)
        document_id = uuid.uuid4()
        now = datetime.utcnow()

        try:
            inserted = await self._insert_if_new(
                session,
                id=document_id,
                tenant_id=ctx.tenant_id,
                entity_type=placement.entity_type,
                entity_id=placement.entity_id,
                category=category,
                storage_path=path,
                filename=file.filename,
                mime_type=file.mime_type,
                size_bytes=len(content),
                sha256=sha256,
                version=version,
                status=DocumentStatus.PENDING.value,
                metadata_json=metadata.to_column(),
                created_at=now,
                updated_at=now,
            )
            if inserted:
                await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Document insert failed for {path}; removing uploaded blob: {e}")
            self._discard_blob(path)
            raise

        if not inserted:
            return await self._record_duplicate(session, ctx, sha256, path, file)

        document = await session.get(Document, document_id)
        logger.info(
            f"Registered document {document_id} v{version} ({category}) for tenant {ctx.tenant_id}"
        )
        await audit_service.log_for(
            session,
            ctx,
            action="document.registered",
            resource_type="document",
            resource_id=document_id,
            details={
                "sha256": sha256,
                "version": version,
                "category": category,
                "storage_path": path,
                "entity_type": placement.entity_type,
                "entity_id": str(placement.entity_id),
            },
        )
        return RegistrationResult(document=document, duplicate=False)

    async def _insert_if_new(self, session: AsyncSession, **values) -> bool:
        """
        Insert a document row unless (tenant_id, sha256) already exists.

        Returns:
            True if a row was inserted, False on a hash conflict
        """
        dialect = session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        table = Document.__table__
        # Table-level insert: the JSON column is keyed by its column name
        if "metadata_json" in values:
            values["metadata"] = values.pop("metadata_json")
        stmt = (
            insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["tenant_id", "sha256"])
            .returning(table.c.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _record_duplicate(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        sha256: str,
        fresh_path: str,
        file: UploadedFile,
    ) -> RegistrationResult:
        existing = await self.find_by_hash(session, ctx.tenant_id, sha256)
        if existing is None:
            # Conflicting row vanished between insert and read
            self._discard_blob(fresh_path)
            raise StorageError(f"Document for hash {sha256[:12]} disappeared during registration")

        if fresh_path != existing.storage_path:
            self._discard_blob(fresh_path)

        meta = existing.meta
        meta.reupload_history.append(
            ReuploadRecord(reason=DUPLICATE_REASON, original_filename=file.filename)
        )
        existing.metadata_json = meta.to_column()
        existing.updated_at = datetime.utcnow()
        await session.commit()

        logger.info(f"Duplicate content for document {existing.id}; recorded re-upload of {file.filename}")
        await audit_service.log_for(
            session,
            ctx,
            action="document.duplicate_detected",
            resource_type="document",
            resource_id=existing.id,
            details={"sha256": sha256, "filename": file.filename},
        )
        return RegistrationResult(document=existing, duplicate=True)

    async def replace_content(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document: Document,
        content: bytes,
        file: UploadedFile,
        reason: str,
    ) -> Document:
        """
        Swap a document's blob for new content under the next slot version.

        The new blob is stored and the row updated first; the old blob is
        deleted only after the update committed.

        Raises:
            ValidationError: If the input is rejected
            DuplicateContentConflict: If another document of the tenant
                already holds this content
            StorageError: If the new blob cannot be stored
        """
        self.validate_upload(content, file)
        sha256 = compute_sha256(content)

        holder = await self.find_by_hash(session, ctx.tenant_id, sha256)
        if holder is not None and holder.id != document.id:
            raise DuplicateContentConflict(str(ctx.tenant_id), sha256)

        placement = Placement(document.entity_type, document.entity_id)
        version = await self.next_version(session, ctx.tenant_id, placement, document.category)
        new_path = self.content_store.upload(
            content,
            ctx.tenant_id,
            document.entity_type,
            document.entity_id,
            document.category,
            version,
            filename=file.filename,
            content_type=file.mime_type,
        )

        old_path = document.storage_path
        meta = document.meta
        meta.reupload_history.append(
            ReuploadRecord(
                reason=reason,
                original_filename=file.filename,
                previous_path=old_path,
                previous_sha256=document.sha256,
            )
        )
        meta.corruption = None

        document.storage_path = new_path
        document.sha256 = sha256
        document.size_bytes = len(content)
        document.mime_type = file.mime_type
        document.version = version
        document.status = DocumentStatus.PENDING.value
        document.metadata_json = meta.to_column()
        document.updated_at = datetime.utcnow()

        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            self._discard_blob(new_path)
            raise DuplicateContentConflict(str(ctx.tenant_id), sha256) from e
        except Exception:
            await session.rollback()
            self._discard_blob(new_path)
            raise

        if old_path != new_path:
            self._discard_blob(old_path)

        logger.info(f"Replaced content of document {document.id}: v{version} ({reason})")
        return document

    async def set_status(
        self,
        session: AsyncSession,
        document: Document,
        status: DocumentStatus,
        commit: bool = True,
    ) -> Document:
        document.status = DocumentStatus(status).value
        document.updated_at = datetime.utcnow()
        if commit:
            await session.commit()
        return document

    def _discard_blob(self, path: str) -> None:
        try:
            self.content_store.delete(path)
        except StorageError as e:
            logger.error(f"Could not remove blob {path}: {e}")

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get(
        self, session: AsyncSession, tenant_id: UUID, document_id: UUID
    ) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(Document.id == document_id, Document.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def find_by_hash(
        self, session: AsyncSession, tenant_id: UUID, sha256: str
    ) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(Document.tenant_id == tenant_id, Document.sha256 == sha256)
        )
        return result.scalar_one_or_none()

    async def next_version(
        self, session: AsyncSession, tenant_id: UUID, placement: Placement, category: str
    ) -> int:
        """Highest version in the slot plus one (1 for an empty slot)."""
        result = await session.execute(
            select(func.max(Document.version)).where(
                Document.tenant_id == tenant_id,
                Document.entity_type == placement.entity_type,
                Document.entity_id == placement.entity_id,
                Document.category == category,
            )
        )
        current = result.scalar()
        return (current or 0) + 1


# Singleton instance
document_registry = DocumentRegistry()
