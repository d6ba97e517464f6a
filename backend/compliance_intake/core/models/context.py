"""
Call context values passed explicitly through every service operation.

There is no ambient tenant: API dependencies build a ``TenantContext`` from
request headers and services take it as an argument.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class TenantContext:
    """
    Who is acting, for which tenant, inside which upload session.

    Attributes:
        tenant_id: Tenant every read and write is scoped to
        actor_id: Operator or user id recorded in the audit trail
        session_id: Active upload session, if the operator opened one
    """
    tenant_id: UUID
    actor_id: Optional[str] = None
    session_id: Optional[UUID] = None


@dataclass(frozen=True)
class Placement:
    """Entity a document is attached to, e.g. ``Placement("project", project_id)``."""
    entity_type: str
    entity_id: UUID


@dataclass(frozen=True)
class UploadedFile:
    """Client-supplied facts about an incoming file."""
    filename: str
    mime_type: str = "application/octet-stream"
