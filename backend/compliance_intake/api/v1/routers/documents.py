"""
Document API Router.

Endpoints for the intake side of the pipeline:
- Multipart intake of a client file (store, dedup, classify, queue)
- Document lookup
- Integrity check and operator-reported corruption
- Re-upload of a corrupted document
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database.base import get_db
from ....core.fulfillment.recovery_service import RecoveryService
from ....core.ingestion.intake_service import IntakeService
from ....core.models.context import TenantContext, UploadedFile
from ....core.models.enums import Platform, Priority
from ....core.registry.document_registry import DocumentRegistry
from ....dependencies import (
    get_document_registry,
    get_intake_service,
    get_recovery_service,
    get_tenant_context,
)
from ..models import (
    CorruptionReportRequest,
    DocumentResponse,
    IntakeResponse,
    IntegrityResponse,
    QueueEntryResponse,
)

logger = logging.getLogger("compliance.api.documents")

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("/intake", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def intake_document(
    company_id: UUID = Form(...),
    project_id: UUID = Form(...),
    category: Optional[str] = Form(None),
    priority: Priority = Form(Priority.NORMAL),
    target_platform: Platform = Form(Platform.NALANDA),
    note: Optional[str] = Form(None),
    file: UploadFile = File(...),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    intake: IntakeService = Depends(get_intake_service),
):
    """
    Receive a client file and put it in the fulfillment queue.

    Identical bytes already registered under the tenant are not stored
    again; the response then carries ``duplicate=true`` and the existing
    queue entry.
    """
    content = await file.read()
    result = await intake.ingest(
        db,
        ctx,
        company_id,
        project_id,
        content,
        UploadedFile(
            filename=file.filename or "",
            mime_type=file.content_type or "application/octet-stream",
        ),
        category=category,
        priority=priority,
        target_platform=target_platform,
        note=note,
    )
    return IntakeResponse(
        document=DocumentResponse.model_validate(result.document),
        queue_entry=QueueEntryResponse.model_validate(result.queue_entry) if result.queue_entry else None,
        duplicate=result.duplicate,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    registry: DocumentRegistry = Depends(get_document_registry),
):
    document = await registry.get(db, ctx.tenant_id, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentResponse.model_validate(document)


@router.post("/{document_id}/integrity-check", response_model=IntegrityResponse)
async def check_integrity(
    document_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    recovery: RecoveryService = Depends(get_recovery_service),
):
    """Verify the stored blob; a failure starts the corruption workflow."""
    report = await recovery.check_integrity(db, ctx, document_id)
    return IntegrityResponse(document_id=report.document_id, ok=report.ok, details=report.details)


@router.post("/{document_id}/corruption", response_model=DocumentResponse)
async def report_corruption(
    document_id: UUID,
    request: CorruptionReportRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    recovery: RecoveryService = Depends(get_recovery_service),
):
    """Operator report that a file could not be opened or uploaded."""
    document = await recovery.mark_corrupted(db, ctx, document_id, request.details)
    return DocumentResponse.model_validate(document)


@router.post("/{document_id}/reupload", response_model=DocumentResponse)
async def reupload_document(
    document_id: UUID,
    file: UploadFile = File(...),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    recovery: RecoveryService = Depends(get_recovery_service),
    registry: DocumentRegistry = Depends(get_document_registry),
):
    """Replace a corrupted document's content and queue it again."""
    content = await file.read()
    await recovery.reupload(
        db,
        ctx,
        document_id,
        content,
        filename=file.filename or None,
        mime_type=file.content_type or None,
    )
    document = await registry.get(db, ctx.tenant_id, document_id)
    return DocumentResponse.model_validate(document)
