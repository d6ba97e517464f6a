# ============================================================================
# compliance_intake/core/errors.py
# ============================================================================
"""
Error taxonomy for the intake and fulfillment pipeline.

Every error carries an HTTP ``status_code`` so the API exception handler can
render it without a lookup table. Some of these are expected states rather
than faults: ``DuplicateContentConflict`` is resolved inside the registry and
``CorruptionDetected`` drives the recovery workflow.
"""

from typing import Optional


class IntakeError(Exception):
    """Base class for every domain error raised by compliance_intake."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class StorageError(IntakeError):
    """Upload, download, delete or reachability failure against the object store."""

    status_code = 503


class ObjectNotFoundError(StorageError):
    """The requested object path does not exist in the bucket."""

    status_code = 404


class ValidationError(IntakeError):
    """Rejected input: empty file, disallowed type, missing or foreign ids."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """A queue entry status change not allowed by the state machine."""

    status_code = 409

    def __init__(self, old_status: str, new_status: str):
        super().__init__(f"Illegal queue transition {old_status} -> {new_status}")
        self.old_status = old_status
        self.new_status = new_status


class DuplicateContentConflict(IntakeError):
    """Identical content already registered under the tenant."""

    status_code = 409

    def __init__(self, tenant_id: str, sha256: str):
        super().__init__(f"Content {sha256[:12]} already registered for tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.sha256 = sha256


class CredentialError(IntakeError):
    """No credential configured for a platform."""

    status_code = 404


class VaultKeyError(CredentialError):
    """The vault master key is missing or malformed."""

    status_code = 500


class CorruptionDetected(IntakeError):
    """A stored document failed its integrity check."""

    status_code = 422

    def __init__(self, document_id: str, details: str):
        super().__init__(f"Document {document_id} is corrupted: {details}")
        self.document_id = document_id
        self.details = details


class PlatformUploadFailure(IntakeError):
    """The portal automation endpoint rejected or failed the upload."""

    status_code = 502

    def __init__(self, message: str, attempts: int = 1, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.attempts = attempts
        self.upstream_status = upstream_status


class PlatformUploadTimeout(PlatformUploadFailure):
    """The portal automation endpoint did not answer within the timeout."""

    status_code = 504
