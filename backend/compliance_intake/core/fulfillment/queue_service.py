"""
Fulfillment Queue Service.

Orders documents awaiting manual upload to an external portal and owns the
queue entry state machine (see status.py). Every status change is written to
the audit log with the acting upload session, the old and new status and the
operator note; those events feed the session counters.

A document can collect many historical entries (for instance after a
corruption-driven re-upload), but only one may be queued or in progress at a
time. A partial unique index enforces that, and ``enqueue`` returns the
existing active entry instead of inserting a second one.

Usage:
    from compliance_intake.core.fulfillment.queue_service import queue_service

    entry = await queue_service.enqueue(
        session, ctx, company_id, project_id, document_id,
        priority=Priority.HIGH, target_platform=Platform.NALANDA,
    )
    await queue_service.set_status(session, ctx, entry.id, QueueStatus.IN_PROGRESS)
    entries = await queue_service.list_by_project(session, ctx, project_id)
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Company, Document, Project, QueueEntry
from ..errors import ValidationError
from ..models.context import TenantContext
from ..models.enums import (
    PRIORITY_RANK,
    DocumentStatus,
    Platform,
    Priority,
    QueueStatus,
)
from ..shared.audit_service import audit_service
from ..storage.content_store import ContentStore, get_content_store
from .status import (
    ACTIVE_STATUSES,
    DOCUMENT_STATUS_FOR_QUEUE,
    is_retry,
    validate_transition,
)

logger = logging.getLogger("compliance.queue")

PRIORITY_ORDER = case(
    {p.value: rank for p, rank in PRIORITY_RANK.items()},
    value=QueueEntry.priority,
    else_=0,
)

ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field} {value!r}; expected one of: {allowed}") from None


class QueueService:
    """
    Service for managing QueueEntry records.

    Args:
        content_store: Used for signed download URLs; defaults to the
            configured singleton
    """

    def __init__(self, content_store: Optional[ContentStore] = None):
        self._content_store = content_store

    @property
    def content_store(self) -> ContentStore:
        if self._content_store is None:
            self._content_store = get_content_store()
        return self._content_store

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    async def enqueue(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        client_id: UUID,
        project_id: UUID,
        document_id: UUID,
        priority: Priority = Priority.NORMAL,
        target_platform: Platform = Platform.NALANDA,
        note: Optional[str] = None,
    ) -> QueueEntry:
        """
        Queue a document for manual fulfillment.

        Args:
            session: Database session
            ctx: Tenant context
            client_id: Client company owning the project
            project_id: Project the document belongs to
            document_id: Document to upload
            priority: low, normal, high or urgent
            target_platform: Portal to upload to
            note: Optional operator note

        Returns:
            The new entry, or the document's existing active entry

        Raises:
            ValidationError: On unknown ids, foreign ids, a corrupted document
                or an invalid priority/platform
        """
        priority = _coerce(Priority, priority, "priority")
        target_platform = _coerce(Platform, target_platform, "platform")

        project = await session.execute(
            select(Project.id)
            .join(Company, Company.id == Project.company_id)
            .where(
                Project.id == project_id,
                Project.tenant_id == ctx.tenant_id,
                Company.id == client_id,
                Company.tenant_id == ctx.tenant_id,
            )
        )
        if project.scalar_one_or_none() is None:
            raise ValidationError(f"Project {project_id} not found for client {client_id}")

        document = await self._get_document(session, ctx.tenant_id, document_id)
        if document is None:
            raise ValidationError(f"Document {document_id} not found")
        if document.status == DocumentStatus.CORRUPTED:
            raise ValidationError(f"Document {document_id} is corrupted and must be re-uploaded first")

        existing = await self.active_entry_for_document(session, ctx.tenant_id, document_id)
        if existing is not None:
            logger.info(f"Document {document_id} already queued as {existing.id}")
            return existing

        seq_result = await session.execute(
            select(func.max(QueueEntry.enqueued_seq)).where(QueueEntry.tenant_id == ctx.tenant_id)
        )
        entry = QueueEntry(
            tenant_id=ctx.tenant_id,
            client_id=client_id,
            project_id=project_id,
            document_id=document_id,
            status=QueueStatus.QUEUED.value,
            priority=priority.value,
            target_platform=target_platform.value,
            note=note,
            retry_count=0,
            enqueued_seq=(seq_result.scalar() or 0) + 1,
        )
        session.add(entry)
        document.status = DocumentStatus.PENDING.value

        try:
            await session.commit()
        except IntegrityError:
            # Another writer queued the same document first
            await session.rollback()
            existing = await self.active_entry_for_document(session, ctx.tenant_id, document_id)
            if existing is None:
                raise
            return existing

        logger.info(
            f"Enqueued document {document_id} as {entry.id} "
            f"(priority={priority.value}, platform={target_platform.value})"
        )
        await audit_service.log_for(
            session,
            ctx,
            action="queue.enqueued",
            resource_type="queue_entry",
            resource_id=entry.id,
            details={
                "document_id": str(document_id),
                "project_id": str(project_id),
                "priority": priority.value,
                "target_platform": target_platform.value,
            },
        )
        return entry

    # =========================================================================
    # STATUS OPERATIONS
    # =========================================================================

    async def set_status(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        entry_id: UUID,
        new_status: QueueStatus,
        note: Optional[str] = None,
        error: Optional[str] = None,
        extra_retries: int = 0,
    ) -> bool:
        """
        Move an entry to ``new_status``.

        Args:
            session: Database session
            ctx: Tenant context (its session_id tags the audit event)
            entry_id: Queue entry to update
            new_status: Target status
            note: Operator note, replaces the previous one when given
            error: Failure message, kept when moving to ``error``
            extra_retries: Automated upload retries to add to retry_count

        Returns:
            True if the entry was updated, False if it does not exist

        Raises:
            InvalidTransitionError: If the transition is not allowed
            ValidationError: If the document is corrupted and the target
                status would push it forward, or a retry would create a
                second active entry
        """
        entry = await self.get(session, ctx.tenant_id, entry_id)
        if entry is None:
            return False

        old = QueueStatus(entry.status)
        new = _coerce(QueueStatus, new_status, "status")
        validate_transition(old, new)

        document = await self._get_document(session, ctx.tenant_id, entry.document_id)
        corrupted = document is not None and document.status == DocumentStatus.CORRUPTED
        if corrupted and new in (QueueStatus.IN_PROGRESS, QueueStatus.UPLOADED):
            raise ValidationError(
                f"Document {entry.document_id} is corrupted; it must be re-uploaded before fulfillment"
            )

        if new is QueueStatus.QUEUED and old not in ACTIVE_STATUSES:
            other = await self.active_entry_for_document(session, ctx.tenant_id, entry.document_id)
            if other is not None and other.id != entry.id:
                raise ValidationError(
                    f"Document {entry.document_id} already has an active queue entry {other.id}"
                )

        entry.status = new.value
        if note is not None:
            entry.note = note
        if new is QueueStatus.ERROR:
            entry.error_message = error or entry.error_message
        elif new is QueueStatus.QUEUED:
            entry.error_message = None
        if is_retry(old, new):
            entry.retry_count += 1
        if extra_retries > 0:
            entry.retry_count += extra_retries
        entry.completed_at = datetime.utcnow() if new is QueueStatus.UPLOADED else None
        entry.updated_at = datetime.utcnow()

        if document is not None and not corrupted:
            document.status = DOCUMENT_STATUS_FOR_QUEUE[new].value
            document.updated_at = datetime.utcnow()

        await session.commit()

        logger.info(f"Queue entry {entry_id}: {old.value} -> {new.value}")
        await audit_service.log_for(
            session,
            ctx,
            action="queue.status_changed",
            resource_type="queue_entry",
            resource_id=entry.id,
            details={
                "old_status": old.value,
                "new_status": new.value,
                "note": note,
                "error": error,
                "retry_count": entry.retry_count,
                "document_id": str(entry.document_id),
            },
            status="failure" if new is QueueStatus.ERROR else "success",
            error_message=error if new is QueueStatus.ERROR else None,
        )
        return True

    async def retry(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        entry_id: UUID,
        note: Optional[str] = None,
    ) -> bool:
        """Send an entry in ``error`` back to ``queued`` (manual retry)."""
        return await self.set_status(session, ctx, entry_id, QueueStatus.QUEUED, note=note)

    async def fail_active_for_document(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document_id: UUID,
        note: str,
    ) -> Optional[QueueEntry]:
        """Move the document's active entry, if any, to ``error``."""
        entry = await self.active_entry_for_document(session, ctx.tenant_id, document_id)
        if entry is None:
            return None
        await self.set_status(session, ctx, entry.id, QueueStatus.ERROR, note=note, error=note)
        return entry

    async def requeue_for_document(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        document_id: UUID,
        note: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        """
        Put a document back in line after its content was replaced.

        The latest entry is reset to ``queued`` when the state machine allows
        it; a finished (uploaded) entry is kept as history and a new entry
        with the same client, project, priority and platform is created.

        Returns:
            The queued entry, or None if the document was never queued
        """
        latest = await self.latest_entry_for_document(session, ctx.tenant_id, document_id)
        if latest is None:
            return None

        status = QueueStatus(latest.status)
        if status is QueueStatus.QUEUED:
            return latest
        if status in (QueueStatus.IN_PROGRESS, QueueStatus.ERROR):
            await self.set_status(session, ctx, latest.id, QueueStatus.QUEUED, note=note)
            return latest

        return await self.enqueue(
            session,
            ctx,
            latest.client_id,
            latest.project_id,
            document_id,
            priority=Priority(latest.priority),
            target_platform=Platform(latest.target_platform),
            note=note,
        )

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get(
        self, session: AsyncSession, tenant_id: UUID, entry_id: UUID
    ) -> Optional[QueueEntry]:
        result = await session.execute(
            select(QueueEntry).where(QueueEntry.id == entry_id, QueueEntry.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def active_entry_for_document(
        self, session: AsyncSession, tenant_id: UUID, document_id: UUID
    ) -> Optional[QueueEntry]:
        result = await session.execute(
            select(QueueEntry).where(
                QueueEntry.tenant_id == tenant_id,
                QueueEntry.document_id == document_id,
                QueueEntry.status.in_(ACTIVE_VALUES),
            )
        )
        return result.scalars().first()

    async def latest_entry_for_document(
        self, session: AsyncSession, tenant_id: UUID, document_id: UUID
    ) -> Optional[QueueEntry]:
        result = await session.execute(
            select(QueueEntry)
            .where(QueueEntry.tenant_id == tenant_id, QueueEntry.document_id == document_id)
            .order_by(QueueEntry.enqueued_seq.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_project(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        project_id: UUID,
        status: Optional[QueueStatus] = None,
    ) -> List[QueueEntry]:
        """
        Entries of a project in work order.

        Ordering: priority descending (urgent first), then creation time
        ascending, then insertion sequence, so entries of one priority tier
        stay first-in first-out.
        """
        query = select(QueueEntry).where(
            QueueEntry.tenant_id == ctx.tenant_id,
            QueueEntry.project_id == project_id,
        )
        if status is not None:
            query = query.where(QueueEntry.status == _coerce(QueueStatus, status, "status").value)

        result = await session.execute(
            query.order_by(
                PRIORITY_ORDER.desc(),
                QueueEntry.created_at.asc(),
                QueueEntry.enqueued_seq.asc(),
            )
        )
        return list(result.scalars().all())

    async def stats(self, session: AsyncSession, tenant_id: UUID) -> Dict[str, Any]:
        """
        Queue counts for a tenant.

        Returns:
            {
                "total": int,
                "by_status": {"queued": n, "in_progress": n, "uploaded": n, "error": n},
                "by_priority": {"low": n, "normal": n, "high": n, "urgent": n},
            }
        """
        by_status = {s.value: 0 for s in QueueStatus}
        result = await session.execute(
            select(QueueEntry.status, func.count(QueueEntry.id))
            .where(QueueEntry.tenant_id == tenant_id)
            .group_by(QueueEntry.status)
        )
        for status, count in result.all():
            by_status[status] = count

        by_priority = {p.value: 0 for p in Priority}
        result = await session.execute(
            select(QueueEntry.priority, func.count(QueueEntry.id))
            .where(QueueEntry.tenant_id == tenant_id)
            .group_by(QueueEntry.priority)
        )
        for priority, count in result.all():
            by_priority[priority] = count

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_priority": by_priority,
        }

    async def overview(self, session: AsyncSession, tenant_id: UUID) -> List[Dict[str, Any]]:
        """
        Per client and project queue counts, computed with one grouped join.

        Returns:
            List of {"client_id", "client_name", "project_id", "project_name",
            "counts": {status: n}, "total"} sorted by client then project name
        """
        result = await session.execute(
            select(
                Company.id,
                Company.name,
                Project.id,
                Project.name,
                QueueEntry.status,
                func.count(QueueEntry.id),
            )
            .join(Project, Project.company_id == Company.id)
            .join(QueueEntry, QueueEntry.project_id == Project.id)
            .where(Company.tenant_id == tenant_id, QueueEntry.tenant_id == tenant_id)
            .group_by(Company.id, Company.name, Project.id, Project.name, QueueEntry.status)
            .order_by(Company.name, Project.name)
        )

        rows: Dict[UUID, Dict[str, Any]] = {}
        for client_id, client_name, project_id, project_name, status, count in result.all():
            row = rows.setdefault(
                project_id,
                {
                    "client_id": client_id,
                    "client_name": client_name,
                    "project_id": project_id,
                    "project_name": project_name,
                    "counts": {s.value: 0 for s in QueueStatus},
                    "total": 0,
                },
            )
            row["counts"][status] = count
            row["total"] += count
        return list(rows.values())

    async def download_url(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        entry_id: UUID,
        ttl_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Signed URL for the document behind a queue entry.

        Returns:
            The URL, or None if the entry, the document or its blob is missing
        """
        entry = await self.get(session, ctx.tenant_id, entry_id)
        if entry is None:
            return None
        document = await self._get_document(session, ctx.tenant_id, entry.document_id)
        if document is None:
            return None
        return self.content_store.signed_url(document.storage_path, ttl_seconds)

    async def _get_document(
        self, session: AsyncSession, tenant_id: UUID, document_id: UUID
    ) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(Document.id == document_id, Document.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()


# Singleton instance
queue_service = QueueService()
