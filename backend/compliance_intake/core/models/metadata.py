"""
Pydantic models for the JSON metadata column on documents.

Metadata is an explicit, versioned record rather than a free-form dict. It is
validated every time it is read from the database, and unknown keys written
by older code are kept so nothing is lost on a round trip.

Usage:
    from compliance_intake.core.models.metadata import DocumentMetadata, ReuploadRecord

    meta = DocumentMetadata.from_column(document.metadata_json)
    meta.reupload_history.append(ReuploadRecord(reason="duplicate_hash_detected"))
    document.metadata_json = meta.to_column()
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

METADATA_SCHEMA_VERSION = 1


class ClassificationInfo(BaseModel):
    """Advisory output of the classification service."""
    category: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    fallback: bool = Field(default=False, description="True when the classifier was unavailable")


class ReuploadRecord(BaseModel):
    """One re-upload of a document, for identical or replacement content."""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    reason: str
    original_filename: Optional[str] = None
    previous_path: Optional[str] = None
    previous_sha256: Optional[str] = None


class CorruptionRecord(BaseModel):
    detected_at: datetime = Field(default_factory=datetime.utcnow)
    details: str
    notified: bool = False


class DocumentMetadata(BaseModel):
    """
    Structured document metadata.

    Attributes:
        schema_version: Layout version of this record
        original_filename: Filename as supplied by the client
        classification: Classifier output at intake time
        reupload_history: Every duplicate or replacement upload, oldest first
        corruption: Last detected integrity failure, cleared on reupload
        platform_paths: Staging copy per platform after a portal upload
    """
    model_config = ConfigDict(extra="allow")

    schema_version: int = METADATA_SCHEMA_VERSION
    original_filename: Optional[str] = None
    classification: Optional[ClassificationInfo] = None
    reupload_history: List[ReuploadRecord] = Field(default_factory=list)
    corruption: Optional[CorruptionRecord] = None
    platform_paths: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_column(cls, value: Optional[Dict[str, Any]]) -> "DocumentMetadata":
        return cls.model_validate(value or {})

    def to_column(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
