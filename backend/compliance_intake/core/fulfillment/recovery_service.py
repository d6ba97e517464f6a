"""
Corruption detection and recovery.

A stored document is corrupted when its blob cannot be read, is empty, or no
longer hashes to the recorded SHA-256. Corruption is a document status, not
an exception that escapes to callers:

    check_integrity ──> mark_corrupted ──> notify_client_of_corruption
                              │
                              └──> active queue entry moved to error

    reupload ──> registry.replace_content ──> queue entry back to queued

Usage:
    from compliance_intake.core.fulfillment.recovery_service import recovery_service

    report = await recovery_service.check_integrity(session, ctx, document_id)
    if not report.ok:
        ...  # document is now corrupted and the client was notified

    await recovery_service.reupload(session, ctx, document_id, new_bytes, "plan.pdf")
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Document, QueueEntry
from ..errors import CorruptionDetected, StorageError, ValidationError
from ..models.context import TenantContext, UploadedFile
from ..models.enums import DocumentStatus, MessagePriority
from ..models.metadata import CorruptionRecord
from ..registry.document_registry import DocumentRegistry, document_registry
from ..shared.audit_service import audit_service
from ..shared.messaging_service import messaging_service
from ..shared.tenant_service import tenant_service
from ..storage.storage_path_service import compute_sha256
from .queue_service import QueueService, queue_service

logger = logging.getLogger("compliance.recovery")

CORRUPTION_TITLE = "Corrupt file detected"
REUPLOAD_REASON = "corruption_detected"


@dataclass(frozen=True)
class IntegrityReport:
    document_id: UUID
    ok: bool
    details: Optional[str] = None


class RecoveryService:
    """
    Integrity checks, corruption handling and re-upload.

    Args:
        registry: Document registry (and through it the content store)
        queue: Queue service used to pull and re-queue entries
    """

    def __init__(
        self,
        registry: Optional[DocumentRegistry] = None,
        queue: Optional[QueueService] = None,
    ):
        self.registry = registry or document_registry
        self.queue = queue or queue_service

    async def _require_document(
        self, session: AsyncSession, ctx: TenantContext, document_id: UUID
    ) -> Document:
        document = await self.registry.get(session, ctx.tenant_id, document_id)
        if document is None:
            raise ValidationError(f"Document {document_id} not found")
        return document

    # =========================================================================
    # DETECTION
    # =========================================================================

    def verify_blob(self, document: Document) -> None:
        """
        Raises:
            CorruptionDetected: If the blob is unreadable, empty or does not
                match the recorded hash
        """
        try:
            content = self.registry.content_store.download(document.storage_path)
        except StorageError as e:
            raise CorruptionDetected(str(document.id), f"unreadable container: {e}") from e
        if not content:
            raise CorruptionDetected(str(document.id), "zero-byte file")
        if compute_sha256(content) != document.sha256:
            raise CorruptionDetected(str(document.id), "checksum mismatch")

    async def check_integrity(
        self, session: AsyncSession, ctx: TenantContext, document_id: UUID
    ) -> IntegrityReport:
        """
        Verify a document's blob and start recovery if it is corrupted.

        A failing check marks the document corrupted, pulls its active queue
        entry into ``error`` and notifies the client.
        """
        document = await self._require_document(session, ctx, document_id)
        try:
            self.verify_blob(document)
        except CorruptionDetected as e:
            await self.mark_corrupted(session, ctx, document_id, e.details)
            return IntegrityReport(document_id=document_id, ok=False, details=e.details)
        return IntegrityReport(document_id=document_id, ok=True)

    async def mark_corrupted(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document_id: UUID,
        details: str,
    ) -> Document:
        """
        Flag a document as corrupted and take it out of normal progression.

        A document that is already corrupted and whose client was notified
        only gets its details refreshed; no second message is sent.

        Returns:
            The updated document
        """
        document = await self._require_document(session, ctx, document_id)

        meta = document.meta
        if (
            document.status == DocumentStatus.CORRUPTED
            and meta.corruption is not None
            and meta.corruption.notified
        ):
            meta.corruption.details = details
            document.metadata_json = meta.to_column()
            await session.commit()
            logger.info(f"Document {document_id} already corrupted and notified; details updated")
            return document

        meta.corruption = CorruptionRecord(details=details)
        document.metadata_json = meta.to_column()
        await self.registry.set_status(session, document, DocumentStatus.CORRUPTED)

        logger.warning(f"Document {document_id} marked corrupted: {details}")
        await audit_service.log_for(
            session,
            ctx,
            action="document.corrupted",
            resource_type="document",
            resource_id=document_id,
            details={"details": details, "storage_path": document.storage_path},
        )

        await self.queue.fail_active_for_document(
            session, ctx, document_id, note=f"Corrupted: {details}"
        )

        notified = await self.notify_client_of_corruption(
            session, ctx, document_id, document.filename, details
        )
        if notified:
            meta = document.meta
            if meta.corruption is not None:
                meta.corruption.notified = True
            document.metadata_json = meta.to_column()
            await session.commit()
        return document

    # =========================================================================
    # NOTIFICATION
    # =========================================================================

    async def notify_client_of_corruption(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document_id: UUID,
        filename: str,
        details: str,
    ) -> bool:
        """
        Send one high-priority message to the owning project's contact.

        Returns:
            True if a message was created, False if the document or a contact
            address is missing
        """
        document = await self.registry.get(session, ctx.tenant_id, document_id)
        if document is None:
            return False

        project_id = await self._owning_project(session, ctx, document)
        if project_id is None:
            logger.warning(f"No owning project for document {document_id}; client not notified")
            return False

        recipients = await tenant_service.contact_addresses(session, ctx.tenant_id, project_id)
        if not recipients:
            logger.warning(f"Project {project_id} has no contact address; client not notified")
            return False

        body = (
            f"The file \"{filename}\" could not be processed because it appears to be "
            f"corrupted ({details}). Please upload it again so it can be submitted "
            f"to the compliance portal."
        )
        message_id = await messaging_service.create_message(
            session,
            tenant_id=ctx.tenant_id,
            recipients=recipients,
            title=CORRUPTION_TITLE,
            body=body,
            priority=MessagePriority.HIGH,
            message_type="alert",
            related_document_id=document_id,
        )
        await session.commit()

        logger.info(f"Corruption notice {message_id} sent for document {document_id}")
        await audit_service.log_for(
            session,
            ctx,
            action="document.corruption_notified",
            resource_type="document",
            resource_id=document_id,
            details={"message_id": str(message_id), "recipients": recipients, "details": details},
        )
        return True

    async def _owning_project(
        self, session: AsyncSession, ctx: TenantContext, document: Document
    ) -> Optional[UUID]:
        if document.entity_type == "project":
            return document.entity_id
        latest: Optional[QueueEntry] = await self.queue.latest_entry_for_document(
            session, ctx.tenant_id, document.id
        )
        return latest.project_id if latest else None

    # =========================================================================
    # RECOVERY
    # =========================================================================

    async def reupload(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document_id: UUID,
        content: bytes,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> bool:
        """
        Replace a corrupted document's content and put it back in line.

        The replacement is stored under the next version of the document's
        slot, the document returns to ``pending`` and the queue entry is reset
        to ``queued`` (a new entry is created if the last one had finished).

        Returns:
            True once the document was replaced

        Raises:
            ValidationError: If the document is missing, not corrupted, or the
                new content is rejected
            DuplicateContentConflict: If another document already has this
                content
        """
        document = await self._require_document(session, ctx, document_id)
        if document.status != DocumentStatus.CORRUPTED:
            raise ValidationError(
                f"Document {document_id} is {document.status}; only corrupted documents can be re-uploaded"
            )

        old_path = document.storage_path
        file = UploadedFile(
            filename=filename or document.filename,
            mime_type=mime_type or document.mime_type,
        )
        await self.registry.replace_content(
            session, ctx, document, content, file, reason=REUPLOAD_REASON
        )

        await audit_service.log_for(
            session,
            ctx,
            action="document.reuploaded",
            resource_type="document",
            resource_id=document_id,
            details={
                "previous_path": old_path,
                "storage_path": document.storage_path,
                "version": document.version,
                "reupload_timestamp": datetime.utcnow().isoformat(),
            },
        )

        await self.queue.requeue_for_document(
            session, ctx, document_id, note="Re-uploaded after corruption"
        )
        return True


# Singleton instance
recovery_service = RecoveryService()
