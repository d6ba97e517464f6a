"""
Batch processor for queue entries.

Runs a list of queue entries through the portal uploader one after another.
Each entry is handled on its own: a failure is recorded on that entry and in
its result, and the loop moves on. The caller always gets one result per
requested id, in request order.

A ``CancellationToken`` is checked between entries. Once it is set, the
remaining ids are returned as ``cancelled`` without being touched.

Per entry:
    1. Only ``queued`` entries are processed; others are skipped
    2. Corrupted documents are skipped (they wait for a re-upload)
    3. Entry -> in_progress
    4. Credential lookup; none configured -> error "credential not configured"
    5. Blob read and verified; corruption starts the recovery workflow
    6. Portal upload with timeout and retries; retries add to retry_count
    7. Entry -> uploaded and the blob is staged in the platform area, or
       entry -> error with the failure message
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ObjectNotFoundError, PlatformUploadFailure, StorageError
from ..models.context import TenantContext
from ..models.enums import DocumentStatus, Platform, QueueStatus
from ..registry.document_registry import DocumentRegistry, document_registry
from ..shared.audit_service import audit_service
from ..storage.storage_path_service import compute_sha256
from ..vault.credential_vault import CredentialVault, credential_vault
from .portal_client import HttpPortalClient, PortalUploader
from .queue_service import QueueService, queue_service
from .recovery_service import RecoveryService

logger = logging.getLogger("compliance.batch")


class CancellationToken:
    """Cooperative cancellation flag checked between batch items."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ItemOutcome(str, Enum):
    UPLOADED = "uploaded"
    ERROR = "error"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class BatchItemResult:
    entry_id: UUID
    outcome: ItemOutcome
    message: Optional[str] = None
    retries: int = 0
    reference: Optional[str] = None
    staged_path: Optional[str] = None


@dataclass
class BatchReport:
    results: List[BatchItemResult] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in ItemOutcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    @property
    def cancelled(self) -> bool:
        return any(r.outcome is ItemOutcome.CANCELLED for r in self.results)


class BatchProcessor:
    """
    Sequential, failure-isolated processing of queue entries.

    Args:
        uploader: Portal uploader; defaults to the HTTP automation client
        queue: Queue service
        vault: Credential vault
        registry: Document registry (and its content store)
    """

    def __init__(
        self,
        uploader: Optional[PortalUploader] = None,
        queue: Optional[QueueService] = None,
        vault: Optional[CredentialVault] = None,
        registry: Optional[DocumentRegistry] = None,
    ):
        self.uploader = uploader or HttpPortalClient()
        self.queue = queue or queue_service
        self.vault = vault or credential_vault
        self.registry = registry or document_registry
        self.recovery = RecoveryService(registry=self.registry, queue=self.queue)

    async def process_documents_batch(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        entry_ids: Sequence[UUID],
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchReport:
        """
        Process queue entries in order.

        Args:
            session: Database session
            ctx: Tenant context; its session_id tags every status change
            entry_ids: Queue entries to process
            cancel_token: Checked before each entry

        Returns:
            BatchReport with exactly one result per id
        """
        report = BatchReport()
        ids = list(entry_ids)

        for index, entry_id in enumerate(ids):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(f"Batch cancelled; {len(ids) - index} entr(ies) not processed")
                report.results.extend(
                    BatchItemResult(entry_id=remaining, outcome=ItemOutcome.CANCELLED, message="Batch cancelled")
                    for remaining in ids[index:]
                )
                break

            try:
                result = await self._process_one(session, ctx, entry_id)
            except Exception as e:
                logger.exception(f"Unexpected failure processing queue entry {entry_id}")
                await session.rollback()
                await self._mark_failed(session, ctx, entry_id, str(e))
                result = BatchItemResult(entry_id=entry_id, outcome=ItemOutcome.ERROR, message=str(e))
            report.results.append(result)

        counts = report.counts
        logger.info(
            f"Batch finished: {len(report.results)} item(s), uploaded={counts['uploaded']}, "
            f"error={counts['error']}, skipped={counts['skipped']}, cancelled={counts['cancelled']}"
        )
        await audit_service.log_for(
            session,
            ctx,
            action="queue.batch_processed",
            resource_type="queue_batch",
            details={"requested": len(ids), **counts},
        )
        return report

    async def _mark_failed(
        self, session: AsyncSession, ctx: TenantContext, entry_id: UUID, message: str
    ) -> None:
        try:
            entry = await self.queue.get(session, ctx.tenant_id, entry_id)
            if entry is not None and entry.status in (
                QueueStatus.QUEUED.value,
                QueueStatus.IN_PROGRESS.value,
            ):
                await self.queue.set_status(
                    session, ctx, entry_id, QueueStatus.ERROR, note="Batch processing failed", error=message
                )
        except Exception as e:
            await session.rollback()
            logger.error(f"Could not record failure on queue entry {entry_id}: {e}")

    async def _process_one(
        self, session: AsyncSession, ctx: TenantContext, entry_id: UUID
    ) -> BatchItemResult:
        entry = await self.queue.get(session, ctx.tenant_id, entry_id)
        if entry is None:
            return BatchItemResult(entry_id=entry_id, outcome=ItemOutcome.SKIPPED, message="Queue entry not found")
        if entry.status != QueueStatus.QUEUED.value:
            return BatchItemResult(
                entry_id=entry_id, outcome=ItemOutcome.SKIPPED, message=f"Entry is {entry.status}"
            )

        document = await self.registry.get(session, ctx.tenant_id, entry.document_id)
        if document is None:
            await self.queue.set_status(
                session, ctx, entry_id, QueueStatus.ERROR, error="Document not found"
            )
            return BatchItemResult(entry_id=entry_id, outcome=ItemOutcome.ERROR, message="Document not found")
        if document.status == DocumentStatus.CORRUPTED:
            return BatchItemResult(
                entry_id=entry_id,
                outcome=ItemOutcome.SKIPPED,
                message="Document is corrupted; waiting for re-upload",
            )

        platform = Platform(entry.target_platform)
        await self.queue.set_status(session, ctx, entry_id, QueueStatus.IN_PROGRESS)

        credential = await self.vault.get(session, ctx.tenant_id, platform)
        if credential is None:
            message = f"Credential not configured for {platform.value}"
            await self.queue.set_status(session, ctx, entry_id, QueueStatus.ERROR, note=message, error=message)
            return BatchItemResult(entry_id=entry_id, outcome=ItemOutcome.ERROR, message=message)

        content, corruption = self._read_blob(document.storage_path, document.sha256)
        if corruption is not None:
            await self.recovery.mark_corrupted(session, ctx, document.id, corruption)
            return BatchItemResult(
                entry_id=entry_id, outcome=ItemOutcome.ERROR, message=f"Corrupted: {corruption}"
            )

        try:
            receipt = await self.uploader.upload(
                platform, credential, document.filename, content, document.mime_type
            )
        except PlatformUploadFailure as e:
            retries = max(0, e.attempts - 1)
            await self.queue.set_status(
                session, ctx, entry_id, QueueStatus.ERROR, error=str(e), extra_retries=retries
            )
            return BatchItemResult(
                entry_id=entry_id, outcome=ItemOutcome.ERROR, message=str(e), retries=retries
            )

        note = f"Uploaded to {platform.value}"
        if receipt.reference:
            note += f" (reference {receipt.reference})"
        await self.queue.set_status(
            session, ctx, entry_id, QueueStatus.UPLOADED, note=note, extra_retries=receipt.retries
        )

        staged_path = None
        try:
            staged_path = self.registry.content_store.move(document.storage_path, platform.value, document.id)
        except StorageError as e:
            logger.warning(f"Uploaded {document.id} but could not stage a platform copy: {e}")
        else:
            meta = document.meta
            meta.platform_paths[platform.value] = staged_path
            document.metadata_json = meta.to_column()
            await session.commit()

        return BatchItemResult(
            entry_id=entry_id,
            outcome=ItemOutcome.UPLOADED,
            message=note,
            retries=receipt.retries,
            reference=receipt.reference,
            staged_path=staged_path,
        )

    def _read_blob(self, path: str, sha256: str):
        """Return (content, None) or (None, corruption details)."""
        try:
            content = self.registry.content_store.download(path)
        except ObjectNotFoundError:
            return None, "unreadable container: blob missing"
        if not content:
            return None, "zero-byte file"
        if compute_sha256(content) != sha256:
            return None, "checksum mismatch"
        return content, None
