"""
Session Tracker for operator upload sessions.

An operator opens a session before a stretch of manual-upload work and closes
it afterwards. While open, the session id travels in ``TenantContext`` and
tags every queue status change in the audit log. Closing the session
recomputes its counters from those audit events:

- processed: distinct queue entries whose status changed in the session
- uploaded: transitions to ``uploaded``
- error: transitions to ``error``

Sessions are bookkeeping only. The queue works the same with or without an
open session.
"""

import logging
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import AuditLog, UploadSession
from ..errors import ValidationError
from ..models.enums import QueueStatus, SessionStatus
from ..shared.audit_service import audit_service

logger = logging.getLogger("compliance.sessions")

STATUS_CHANGED_ACTION = "queue.status_changed"


class SessionTracker:

    async def start(self, session: AsyncSession, operator_id: str) -> UUID:
        """Open a session for ``operator_id`` and return its id."""
        if not operator_id or not operator_id.strip():
            raise ValidationError("operator_id is required to start a session")

        upload_session = UploadSession(operator_id=operator_id, status=SessionStatus.ACTIVE.value)
        session.add(upload_session)
        await session.commit()

        logger.info(f"Operator {operator_id} started upload session {upload_session.id}")
        await audit_service.log_event(
            session,
            tenant_id=None,
            actor_id=operator_id,
            action="session.started",
            resource_type="upload_session",
            resource_id=upload_session.id,
            session_id=upload_session.id,
        )
        return upload_session.id

    async def get(self, session: AsyncSession, session_id: UUID) -> Optional[UploadSession]:
        return await session.get(UploadSession, session_id)

    async def compute_counters(self, session: AsyncSession, session_id: UUID) -> Dict[str, int]:
        """Counters derived from the session's queue status-change events."""
        result = await session.execute(
            select(AuditLog.resource_id, AuditLog.details).where(
                AuditLog.session_id == session_id,
                AuditLog.action == STATUS_CHANGED_ACTION,
            )
        )
        entries = set()
        uploaded = errors = 0
        for resource_id, details in result.all():
            entries.add(resource_id)
            new_status = (details or {}).get("new_status")
            if new_status == QueueStatus.UPLOADED.value:
                uploaded += 1
            elif new_status == QueueStatus.ERROR.value:
                errors += 1
        return {"processed": len(entries), "uploaded": uploaded, "error": errors}

    async def end(
        self, session: AsyncSession, session_id: UUID, notes: Optional[str] = None
    ) -> bool:
        """
        Close an active session and store its final counters.

        Returns:
            True if the session was closed, False if it does not exist or is
            no longer active
        """
        return await self._close(session, session_id, SessionStatus.COMPLETED, notes)

    async def cancel(
        self, session: AsyncSession, session_id: UUID, notes: Optional[str] = None
    ) -> bool:
        """Close an active session as cancelled; counters are still recorded."""
        return await self._close(session, session_id, SessionStatus.CANCELLED, notes)

    async def _close(
        self,
        session: AsyncSession,
        session_id: UUID,
        status: SessionStatus,
        notes: Optional[str],
    ) -> bool:
        upload_session = await self.get(session, session_id)
        if upload_session is None or upload_session.status != SessionStatus.ACTIVE.value:
            return False

        counters = await self.compute_counters(session, session_id)
        upload_session.processed_count = counters["processed"]
        upload_session.uploaded_count = counters["uploaded"]
        upload_session.error_count = counters["error"]
        upload_session.status = status.value
        upload_session.ended_at = datetime.utcnow()
        if notes is not None:
            upload_session.notes = notes
        await session.commit()

        logger.info(
            f"Upload session {session_id} {status.value}: processed={counters['processed']} "
            f"uploaded={counters['uploaded']} error={counters['error']}"
        )
        await audit_service.log_event(
            session,
            tenant_id=None,
            actor_id=upload_session.operator_id,
            action=f"session.{status.value}",
            resource_type="upload_session",
            resource_id=session_id,
            details=counters,
            session_id=session_id,
        )
        return True


# Singleton instance
session_tracker = SessionTracker()
