from .context import Placement, TenantContext, UploadedFile
from .enums import (
    CredentialState,
    DocumentCategory,
    DocumentStatus,
    MessagePriority,
    Platform,
    Priority,
    QueueStatus,
    SessionStatus,
)
from .metadata import DocumentMetadata

__all__ = [
    "CredentialState",
    "DocumentCategory",
    "DocumentMetadata",
    "DocumentStatus",
    "MessagePriority",
    "Placement",
    "Platform",
    "Priority",
    "QueueStatus",
    "SessionStatus",
    "TenantContext",
    "UploadedFile",
]
