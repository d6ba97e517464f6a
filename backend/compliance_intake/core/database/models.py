# backend/compliance_intake/core/database/models.py
"""
SQLAlchemy ORM models for the multi-tenant compliance intake store.

Models:
    - Tenant: Isolated customer account
    - Company: Client company inside a tenant
    - Project: Construction project of a company, with its contact address
    - Document: Content-addressed document record (one per tenant and hash)
    - QueueEntry: Unit of manual-fulfillment work for one document
    - PlatformCredential: Encrypted portal login for a tenant
    - UploadSession: Operator batch session with aggregate counters
    - OutboundMessage: Client notification outbox
    - AuditLog: Append-only trail of every mutating action

All models use UUID primary keys and include timestamps for auditing.
Hierarchy (tenant -> company -> project -> documents) is normalized with
foreign keys and queried with joins rather than materialized as trees.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from ..models.metadata import DocumentMetadata
from .base import Base


# UUID type that works with both SQLite and PostgreSQL
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


ACTIVE_QUEUE_STATUSES = ("queued", "in_progress")


class Tenant(Base):
    """
    Tenant (customer account) model.

    Every other record is scoped by ``tenant_id``.

    Attributes:
        id: Unique tenant identifier
        name: Display name
        slug: URL-safe unique identifier
        created_at: Creation timestamp
    """

    __tablename__ = "tenants"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug={self.slug})>"


class Company(Base):
    """
    Client company of a tenant.

    Attributes:
        id: Unique company identifier
        tenant_id: Owning tenant
        name: Company name
        tax_id: Fiscal identifier (CIF/NIF), optional
        contact_email: Fallback contact for notifications
    """

    __tablename__ = "companies"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    tax_id = Column(String(32), nullable=True)
    contact_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name})>"


class Project(Base):
    """
    Project (work site) of a client company.

    Attributes:
        id: Unique project identifier
        tenant_id: Owning tenant (denormalized for scoped lookups)
        company_id: Company running the project
        name: Project name
        code: Optional external reference
        contact_email: Address notified about problems with project documents
    """

    __tablename__ = "projects"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id = Column(
        UUID(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    code = Column(String(64), nullable=True)
    contact_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name})>"


class Document(Base):
    """
    Content-addressed compliance document.

    A document is unique per (tenant, sha256); re-uploading identical bytes
    updates ``metadata`` only. New content for the same logical slot
    (tenant, entity_type, entity_id, category) gets the next ``version``.

    Attributes:
        id: Unique document identifier
        tenant_id: Owning tenant
        entity_type: Placement kind (project, company)
        entity_id: Placement identifier
        category: Classified document category
        storage_path: Object key of the canonical blob
        filename: Original filename of the first upload
        mime_type: Content type
        size_bytes: Blob size
        sha256: Hex digest of the content
        version: Version within the slot, starting at 1
        status: pending, processing, uploaded, validated, error, corrupted
        metadata_json: Structured metadata (see DocumentMetadata)
    """

    __tablename__ = "documents"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID(), nullable=False)
    category = Column(String(50), nullable=False, default="OTHER")
    storage_path = Column(String(1024), nullable=False)
    filename = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    sha256 = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="pending", index=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "sha256", name="uq_documents_tenant_sha256"),
        UniqueConstraint(
            "tenant_id", "entity_type", "entity_id", "category", "version",
            name="uq_documents_slot_version",
        ),
        Index("ix_documents_slot", "tenant_id", "entity_type", "entity_id", "category"),
    )

    @property
    def meta(self) -> DocumentMetadata:
        """Validated view of ``metadata_json``."""
        return DocumentMetadata.from_column(self.metadata_json)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, version={self.version}, status={self.status})>"


class QueueEntry(Base):
    """
    Manual-fulfillment work item for one document.

    A document may accumulate historical entries, but at most one can be
    queued or in progress at a time (partial unique index).

    Attributes:
        id: Unique entry identifier
        tenant_id: Owning tenant
        client_id: Client company
        project_id: Project the document belongs to
        document_id: Document to upload
        status: queued, in_progress, uploaded, error
        priority: low, normal, high, urgent
        target_platform: nalanda, ctaima, ecoordina
        note: Free-text operator note
        error_message: Last failure message
        retry_count: Manual retries plus automated upload retries
        enqueued_seq: Insertion sequence within the tenant (FIFO tie-break)
    """

    __tablename__ = "queue_entries"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(
        UUID(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id = Column(
        UUID(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_id = Column(
        UUID(), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default="queued", index=True)
    priority = Column(String(20), nullable=False, default="normal")
    target_platform = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    enqueued_seq = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_queue_entries_active_document",
            "document_id",
            unique=True,
            sqlite_where=text("status IN ('queued', 'in_progress')"),
            postgresql_where=text("status IN ('queued', 'in_progress')"),
        ),
        Index("ix_queue_entries_project_order", "project_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<QueueEntry(id={self.id}, status={self.status}, priority={self.priority})>"


class PlatformCredential(Base):
    """
    Encrypted login for an external portal, owned by a tenant.

    Attributes:
        id: Unique credential identifier
        tenant_id: Owning tenant
        platform_type: nalanda, ctaima, ecoordina
        alias: Operator-facing name, unique per tenant and platform
        username_encrypted: Encrypted username
        password_encrypted: Encrypted password
        state: ready, pending, invalid
        last_validated: Last time an operator confirmed the login works
    """

    __tablename__ = "platform_credentials"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform_type = Column(String(20), nullable=False)
    alias = Column(String(100), nullable=False)
    username_encrypted = Column(Text, nullable=False)
    password_encrypted = Column(Text, nullable=False)
    state = Column(String(20), nullable=False, default="ready")
    last_validated = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "platform_type", "alias", name="uq_platform_credentials_alias"
        ),
    )

    def __repr__(self) -> str:
        return f"<PlatformCredential(id={self.id}, platform={self.platform_type}, alias={self.alias})>"


class UploadSession(Base):
    """
    Operator batch session.

    Counters are recomputed from the audit trail when the session ends.

    Attributes:
        id: Unique session identifier
        operator_id: Operator who opened the session
        status: active, completed, cancelled
        processed_count: Distinct queue entries touched
        uploaded_count: Transitions to uploaded
        error_count: Transitions to error
        notes: Closing notes
    """

    __tablename__ = "upload_sessions"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    operator_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    processed_count = Column(Integer, nullable=False, default=0)
    uploaded_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<UploadSession(id={self.id}, status={self.status})>"


class OutboundMessage(Base):
    """
    Client notification waiting for delivery.

    Attributes:
        id: Unique message identifier
        tenant_id: Owning tenant
        recipients: List of email addresses
        title: Subject line
        body: Message text
        priority: low, normal, high
        message_type: alert or info
        related_document_id: Document the message is about, if any
        delivery_status: pending until a mailer picks it up
    """

    __tablename__ = "outbound_messages"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        UUID(), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipients = Column(JSON, nullable=False, default=list)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    priority = Column(String(20), nullable=False, default="normal")
    message_type = Column(String(20), nullable=False, default="info")
    related_document_id = Column(UUID(), nullable=True, index=True)
    delivery_status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<OutboundMessage(id={self.id}, priority={self.priority})>"


class AuditLog(Base):
    """
    Audit log model for tracking every mutating action.

    Attributes:
        id: Unique log entry identifier
        tenant_id: Tenant context (nullable for system-level actions)
        actor_id: Operator or user who performed the action
        session_id: Upload session the action belongs to, if any
        action: Action type (document.registered, queue.status_changed, ...)
        resource_type: Type of resource affected (document, queue_entry, ...)
        resource_id: ID of affected resource
        details: Detailed action information
        status: success or failure
        error_message: Error message if action failed
        created_at: Timestamp when action occurred
    """

    __tablename__ = "audit_logs"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(), nullable=True, index=True)
    actor_id = Column(String(255), nullable=True, index=True)
    session_id = Column(UUID(), nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=True, index=True)
    resource_id = Column(UUID(), nullable=True)

    details = Column(JSON, nullable=True)

    # Status
    status = Column(String(20), nullable=False, default="success")
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, status={self.status})>"
