"""
Intake pipeline: one incoming client file to a registered, queued document.

    file ──> validate ──> classify (advisory) ──> registry.register_or_update
                                                        │
                          duplicate? ── yes ──> existing queue entry
                                     └─ no ───> queue.enqueue

Re-sending identical bytes under the same tenant never creates a second
document or a second queue entry for it. When the known document is
corrupted, the re-sent bytes replace its damaged blob through the recovery
workflow and the document goes back in line.

Usage:
    from compliance_intake.core.ingestion.intake_service import intake_service

    result = await intake_service.ingest(
        session, ctx, company_id, project_id, content,
        UploadedFile("fileA.pdf", "application/pdf"),
    )
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Document, QueueEntry
from ..errors import ValidationError
from ..fulfillment.queue_service import QueueService, queue_service
from ..fulfillment.recovery_service import RecoveryService
from ..models.context import Placement, TenantContext, UploadedFile
from ..models.enums import DocumentStatus, Platform, Priority
from ..models.metadata import ClassificationInfo
from ..registry.classification_client import ClassificationClient
from ..registry.document_registry import DocumentRegistry, document_registry
from ..shared.tenant_service import tenant_service

logger = logging.getLogger("compliance.intake")


@dataclass
class IntakeResult:
    document: Document
    queue_entry: Optional[QueueEntry]
    duplicate: bool


class IntakeService:
    """
    Args:
        registry: Document registry
        queue: Fulfillment queue
        classifier: Classification client; defaults to one built from settings
        recovery: Recovery service used when a client re-sends a corrupted
            document; defaults to one over the same registry and queue
    """

    def __init__(
        self,
        registry: Optional[DocumentRegistry] = None,
        queue: Optional[QueueService] = None,
        classifier: Optional[ClassificationClient] = None,
        recovery: Optional[RecoveryService] = None,
    ):
        self.registry = registry or document_registry
        self.queue = queue or queue_service
        self.classifier = classifier or ClassificationClient()
        self.recovery = recovery or RecoveryService(registry=self.registry, queue=self.queue)

    async def ingest(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        company_id: UUID,
        project_id: UUID,
        content: bytes,
        file: UploadedFile,
        category: Optional[str] = None,
        priority: Priority = Priority.NORMAL,
        target_platform: Platform = Platform.NALANDA,
        note: Optional[str] = None,
    ) -> IntakeResult:
        """
        Store, register and queue one client file.

        Args:
            session: Database session
            ctx: Tenant context
            company_id: Client company
            project_id: Project under the company the file belongs to
            content: File bytes
            file: Client-supplied filename and MIME type
            category: Known category; the classifier is asked when omitted
            priority: Queue priority
            target_platform: Portal the document is destined for
            note: Operator note stored on a new queue entry

        Returns:
            IntakeResult with the document, its queue entry and whether the
            content was already known

        Raises:
            ValidationError: On a rejected file or an unknown project
            StorageError: If the blob cannot be stored
        """
        project = await tenant_service.get_project(session, ctx.tenant_id, project_id)
        if project is None or project.company_id != company_id:
            raise ValidationError(f"Project {project_id} not found for client {company_id}")

        self.registry.validate_upload(content, file)

        classification = None
        if category is None:
            result = await self.classifier.classify(content, file.filename, file.mime_type)
            category = result.category.value
            classification = ClassificationInfo(
                category=result.category.value,
                confidence=result.confidence,
                fallback=result.fallback,
            )

        registration = await self.registry.register_or_update(
            session,
            ctx,
            Placement("project", project_id),
            category,
            content,
            file,
            classification=classification,
        )
        document = registration.document

        if registration.duplicate and document.status == DocumentStatus.CORRUPTED:
            await self.recovery.reupload(
                session, ctx, document.id, content, file.filename, file.mime_type
            )
            logger.info(f"Intake of {file.filename} restored corrupted document {document.id}")

        if registration.duplicate:
            entry = await self.queue.active_entry_for_document(session, ctx.tenant_id, document.id)
            if entry is None:
                entry = await self.queue.latest_entry_for_document(session, ctx.tenant_id, document.id)
            if entry is not None:
                logger.info(f"Duplicate intake of {file.filename} resolved to document {document.id}")
                return IntakeResult(document=document, queue_entry=entry, duplicate=True)

        entry = await self.queue.enqueue(
            session,
            ctx,
            client_id=company_id,
            project_id=project_id,
            document_id=document.id,
            priority=priority,
            target_platform=target_platform,
            note=note,
        )
        logger.info(f"Ingested {file.filename} as document {document.id}, queue entry {entry.id}")
        return IntakeResult(document=document, queue_entry=entry, duplicate=registration.duplicate)


# Singleton instance
intake_service = IntakeService()
