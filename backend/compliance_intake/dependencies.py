"""
FastAPI dependencies for the compliance intake API.

Tenant context:
    Every tenant-scoped endpoint depends on ``get_tenant_context``, which
    reads the call context from request headers:

    - ``X-Tenant-Id`` (required): tenant all reads and writes are scoped to
    - ``X-Actor-Id``: operator or user id recorded in the audit trail
    - ``X-Upload-Session-Id``: open upload session that status changes
      are attributed to

Services:
    Routers obtain services through the ``get_*`` providers below rather than
    importing singletons directly, so tests can swap them with
    ``app.dependency_overrides``.

Usage:
    from fastapi import Depends
    from compliance_intake.dependencies import get_tenant_context

    @router.get("/queue/stats")
    async def stats(ctx: TenantContext = Depends(get_tenant_context)):
        ...
"""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from .core.fulfillment.batch_processor import BatchProcessor
from .core.fulfillment.queue_service import QueueService, queue_service
from .core.fulfillment.recovery_service import RecoveryService, recovery_service
from .core.fulfillment.session_tracker import SessionTracker, session_tracker
from .core.ingestion.intake_service import IntakeService, intake_service
from .core.models.context import TenantContext
from .core.registry.document_registry import DocumentRegistry, document_registry
from .core.vault.credential_vault import CredentialVault, credential_vault


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header} must be a UUID",
        )


# =========================================================================
# TENANT CONTEXT
# =========================================================================


async def get_tenant_context(
    x_tenant_id: str = Header(..., alias="X-Tenant-Id"),
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_upload_session_id: Optional[str] = Header(None, alias="X-Upload-Session-Id"),
) -> TenantContext:
    """
    Build the call context from request headers.

    Raises:
        HTTPException: 400 if a tenant or session id is not a UUID
    """
    tenant_id = _parse_uuid(x_tenant_id, "X-Tenant-Id")
    session_id = _parse_uuid(x_upload_session_id, "X-Upload-Session-Id") if x_upload_session_id else None
    return TenantContext(tenant_id=tenant_id, actor_id=x_actor_id or None, session_id=session_id)


# =========================================================================
# SERVICE PROVIDERS
# =========================================================================


def get_document_registry() -> DocumentRegistry:
    return document_registry


def get_intake_service() -> IntakeService:
    return intake_service


def get_queue_service() -> QueueService:
    return queue_service


def get_recovery_service() -> RecoveryService:
    return recovery_service


def get_credential_vault() -> CredentialVault:
    return credential_vault


def get_session_tracker() -> SessionTracker:
    return session_tracker


def get_batch_processor() -> BatchProcessor:
    """Batch processor wired to the configured portal automation endpoints."""
    return BatchProcessor(queue=queue_service, vault=credential_vault, registry=document_registry)
