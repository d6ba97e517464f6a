"""
Fulfillment Queue API Router.

Operator-facing endpoints for manual fulfillment:
- Queue listing per project in work order
- Status changes and manual retry
- Tenant stats and per-project overview
- Batch processing through the portal automation client
- Signed download URL for the document behind an entry
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ....config import settings
from ....core.database.base import get_db
from ....core.fulfillment.batch_processor import BatchProcessor
from ....core.fulfillment.queue_service import QueueService
from ....core.models.context import TenantContext
from ....core.models.enums import QueueStatus
from ....dependencies import get_batch_processor, get_queue_service, get_tenant_context
from ..models import (
    BatchItemResponse,
    BatchRequest,
    BatchResponse,
    DownloadUrlResponse,
    QueueEntryResponse,
    QueueOverviewItem,
    QueueStatsResponse,
    RetryRequest,
    StatusUpdateRequest,
)

logger = logging.getLogger("compliance.api.queue")

router = APIRouter(prefix="/queue", tags=["Fulfillment Queue"])


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Counts by status and priority for the tenant."""
    return QueueStatsResponse(**await queue.stats(db, ctx.tenant_id))


@router.get("/overview", response_model=List[QueueOverviewItem])
async def queue_overview(
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Counts per client project."""
    return [QueueOverviewItem(**row) for row in await queue.overview(db, ctx.tenant_id)]


@router.get("/projects/{project_id}", response_model=List[QueueEntryResponse])
async def list_project_queue(
    project_id: UUID,
    status: Optional[QueueStatus] = Query(None, description="Only entries in this status"),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Entries of a project, urgent first, then oldest first."""
    entries = await queue.list_by_project(db, ctx, project_id, status=status)
    return [QueueEntryResponse.model_validate(e) for e in entries]


@router.post("/batch", response_model=BatchResponse)
async def process_batch(
    request: BatchRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    processor: BatchProcessor = Depends(get_batch_processor),
):
    """
    Run the given entries through the portal automation client.

    Always answers with one result per requested entry; individual failures
    are reported in the results rather than as an HTTP error.
    """
    report = await processor.process_documents_batch(db, ctx, request.entry_ids)
    return BatchResponse(
        results=[
            BatchItemResponse(
                entry_id=r.entry_id,
                outcome=r.outcome.value,
                message=r.message,
                retries=r.retries,
                reference=r.reference,
                staged_path=r.staged_path,
            )
            for r in report.results
        ],
        counts=report.counts,
    )


@router.get("/{entry_id}", response_model=QueueEntryResponse)
async def get_entry(
    entry_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    entry = await queue.get(db, ctx.tenant_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Queue entry not found")
    return QueueEntryResponse.model_validate(entry)


@router.post("/{entry_id}/status", response_model=QueueEntryResponse)
async def update_status(
    entry_id: UUID,
    request: StatusUpdateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Record the outcome of a manual upload step."""
    updated = await queue.set_status(
        db, ctx, entry_id, request.status, note=request.note, error=request.error
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Queue entry not found")
    return QueueEntryResponse.model_validate(await queue.get(db, ctx.tenant_id, entry_id))


@router.post("/{entry_id}/retry", response_model=QueueEntryResponse)
async def retry_entry(
    entry_id: UUID,
    request: Optional[RetryRequest] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Send a failed entry back to the queue."""
    note = request.note if request else None
    if not await queue.retry(db, ctx, entry_id, note=note):
        raise HTTPException(status_code=404, detail="Queue entry not found")
    return QueueEntryResponse.model_validate(await queue.get(db, ctx.tenant_id, entry_id))


@router.get("/{entry_id}/download", response_model=DownloadUrlResponse)
async def download_url(
    entry_id: UUID,
    ttl_seconds: Optional[int] = Query(None, ge=1, le=7 * 24 * 3600),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    queue: QueueService = Depends(get_queue_service),
):
    """Time-limited link to the document file for the operator."""
    ttl = ttl_seconds or settings.signed_url_ttl_seconds
    url = await queue.download_url(db, ctx, entry_id, ttl)
    if url is None:
        raise HTTPException(status_code=404, detail="Document file not available")
    return DownloadUrlResponse(entry_id=entry_id, url=url, expires_in=ttl)
