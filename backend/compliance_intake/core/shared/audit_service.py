"""
Audit Service for the append-only action trail.

Every mutating action in the pipeline (document registration, queue status
changes, credential saves, corruption reports) is recorded here. Audit events
tagged with an upload session id are also the source of the session
counters computed by the session tracker.

Writing an event never raises: a failing audit write is logged and dropped,
so it cannot undo or block the action being audited. Events are written in
their own short transaction on the caller's engine, after the caller has
committed its own work.

Usage:
    from compliance_intake.core.shared.audit_service import audit_service

    await audit_service.log_event(
        session=session,
        tenant_id=ctx.tenant_id,
        actor_id=ctx.actor_id,
        action="queue.status_changed",
        resource_type="queue_entry",
        resource_id=entry.id,
        details={"old_status": "queued", "new_status": "in_progress"},
        session_id=ctx.session_id,
    )
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import AuditLog
from ..models.context import TenantContext

logger = logging.getLogger("compliance.audit")


class AuditService:
    """Service for writing and reading AuditLog records."""

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    async def log_event(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID],
        actor_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        session_id: Optional[UUID] = None,
        status: str = "success",
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Record an audit event.

        Args:
            session: Caller's database session (its engine is reused)
            tenant_id: Tenant context, None for system actions
            actor_id: Operator or user id, None for system actions
            action: Dotted action name, e.g. ``document.registered``
            resource_type: Kind of resource affected
            resource_id: Affected resource id
            details: JSON-serializable context
            session_id: Upload session the action belongs to
            status: ``success`` or ``failure``
            error_message: Failure message when status is ``failure``

        Returns:
            True if the event was stored, False if the write failed
        """
        try:
            async with AsyncSession(session.bind, expire_on_commit=False) as audit_session:
                audit_session.add(
                    AuditLog(
                        tenant_id=tenant_id,
                        actor_id=actor_id,
                        session_id=session_id,
                        action=action,
                        resource_type=resource_type,
                        resource_id=resource_id,
                        details=details or {},
                        status=status,
                        error_message=error_message,
                    )
                )
                await audit_session.commit()
        except Exception as e:
            logger.warning(f"Audit write failed for {action} on {resource_type}:{resource_id}: {e}")
            return False

        logger.debug(f"[audit] {action} {resource_type}:{resource_id} by {actor_id}")
        return True

    async def log_for(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        action: str,
        resource_type: str,
        resource_id: Optional[UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        status: str = "success",
        error_message: Optional[str] = None,
    ) -> bool:
        """Record an audit event for the tenant, actor and session in ``ctx``."""
        return await self.log_event(
            session=session,
            tenant_id=ctx.tenant_id,
            actor_id=ctx.actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            session_id=ctx.session_id,
            status=status,
            error_message=error_message,
        )

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def list_events(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
        action: Optional[str] = None,
        resource_id: Optional[UUID] = None,
        limit: int = 500,
    ) -> List[AuditLog]:
        """
        List audit events, oldest first, filtered by any combination of fields.
        """
        query = select(AuditLog)
        if tenant_id is not None:
            query = query.where(AuditLog.tenant_id == tenant_id)
        if session_id is not None:
            query = query.where(AuditLog.session_id == session_id)
        if action is not None:
            query = query.where(AuditLog.action == action)
        if resource_id is not None:
            query = query.where(AuditLog.resource_id == resource_id)

        result = await session.execute(query.order_by(AuditLog.created_at).limit(limit))
        return list(result.scalars().all())


# Singleton instance
audit_service = AuditService()
