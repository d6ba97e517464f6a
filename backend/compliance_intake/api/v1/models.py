"""
Request and response models for the v1 API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ...core.models.enums import CredentialState, Platform, QueueStatus


class ErrorResponse(BaseModel):
    """
    Standard error response model for API errors.

    Attributes:
        error: Error category or type
        detail: Detailed error message
        timestamp: When the error occurred
    """
    error: str = Field(description="Error category or type")
    detail: str = Field(description="Detailed error message")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    version: str
    database: Dict[str, Any]
    storage_available: bool


# =========================================================================
# TENANT HIERARCHY
# =========================================================================


class TenantCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100)


class TenantResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    created_at: datetime

    class Config:
        from_attributes = True


class CompanyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    tax_id: Optional[str] = Field(None, max_length=32)
    contact_email: Optional[str] = Field(None, max_length=255)


class CompanyResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    tax_id: Optional[str]
    contact_email: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=64)
    contact_email: Optional[str] = Field(None, max_length=255)


class ProjectResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    company_id: UUID
    name: str
    code: Optional[str]
    contact_email: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# =========================================================================
# DOCUMENTS
# =========================================================================


class DocumentResponse(BaseModel):
    """Registered document."""
    id: UUID = Field(..., description="Document UUID")
    tenant_id: UUID
    entity_type: str
    entity_id: UUID
    category: str
    storage_path: str = Field(..., description="Content-addressed object key")
    filename: str
    mime_type: str
    size_bytes: int
    sha256: str
    version: int
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class QueueEntryResponse(BaseModel):
    """Fulfillment queue entry."""
    id: UUID
    tenant_id: UUID
    client_id: UUID
    project_id: UUID
    document_id: UUID
    status: str
    priority: str
    target_platform: str
    note: Optional[str]
    error_message: Optional[str]
    retry_count: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class IntakeResponse(BaseModel):
    document: DocumentResponse
    queue_entry: Optional[QueueEntryResponse]
    duplicate: bool = Field(..., description="True when the content was already registered")


class CorruptionReportRequest(BaseModel):
    details: str = Field(..., min_length=1, description="What is wrong with the file")


class IntegrityResponse(BaseModel):
    document_id: UUID
    ok: bool
    details: Optional[str] = None


class MessageResponse(BaseModel):
    id: UUID
    recipients: List[str]
    title: str
    body: str
    priority: str
    message_type: str
    related_document_id: Optional[UUID]
    delivery_status: str
    created_at: datetime

    class Config:
        from_attributes = True


# =========================================================================
# QUEUE
# =========================================================================


class StatusUpdateRequest(BaseModel):
    status: QueueStatus
    note: Optional[str] = None
    error: Optional[str] = None


class RetryRequest(BaseModel):
    note: Optional[str] = None


class QueueStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]


class QueueOverviewItem(BaseModel):
    """Queue counts for one client project."""
    client_id: UUID
    client_name: str
    project_id: UUID
    project_name: str
    counts: Dict[str, int]
    total: int


class BatchRequest(BaseModel):
    entry_ids: List[UUID] = Field(..., min_length=1)


class BatchItemResponse(BaseModel):
    entry_id: UUID
    outcome: str
    message: Optional[str] = None
    retries: int = 0
    reference: Optional[str] = None
    staged_path: Optional[str] = None


class BatchResponse(BaseModel):
    results: List[BatchItemResponse]
    counts: Dict[str, int]


class DownloadUrlResponse(BaseModel):
    entry_id: UUID
    url: str
    expires_in: int


# =========================================================================
# CREDENTIALS
# =========================================================================


class CredentialSaveRequest(BaseModel):
    platform: Platform
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    alias: Optional[str] = Field(None, max_length=100)


class CredentialStateRequest(BaseModel):
    state: CredentialState


class CredentialSummaryResponse(BaseModel):
    id: UUID
    platform: Platform
    alias: str
    username: str
    state: CredentialState
    last_validated: Optional[datetime]
    updated_at: datetime

    class Config:
        from_attributes = True


class CredentialResponse(BaseModel):
    """Decrypted credential for the operator performing a manual upload."""
    id: UUID
    platform: Platform
    alias: str
    username: str
    password: str
    state: CredentialState
    last_validated: Optional[datetime]

    class Config:
        from_attributes = True


# =========================================================================
# SESSIONS
# =========================================================================


class SessionStartRequest(BaseModel):
    operator_id: str = Field(..., min_length=1, max_length=255)


class SessionEndRequest(BaseModel):
    notes: Optional[str] = None


class SessionResponse(BaseModel):
    id: UUID
    operator_id: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime]
    processed_count: int
    uploaded_count: int
    error_count: int
    notes: Optional[str]

    class Config:
        from_attributes = True
