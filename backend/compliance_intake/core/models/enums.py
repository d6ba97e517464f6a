"""
Closed value sets for the intake and fulfillment pipeline.

Statuses are stored as plain strings in the database; these enums are the
only values code is allowed to write, and rows are converted back into them
when read.
"""

from enum import Enum


class Platform(str, Enum):
    """External compliance portals a document can be fulfilled onto."""
    NALANDA = "nalanda"         # nalandaglobal.com
    CTAIMA = "ctaima"           # ctaima.com
    ECOORDINA = "ecoordina"     # welcometotwind.io


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    UPLOADED = "uploaded"
    VALIDATED = "validated"     # Portal accepted the upload
    ERROR = "error"
    CORRUPTED = "corrupted"     # Terminal until reuploaded


class QueueStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    UPLOADED = "uploaded"
    ERROR = "error"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.NORMAL: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class CredentialState(str, Enum):
    READY = "ready"
    PENDING = "pending"
    INVALID = "invalid"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MessagePriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class DocumentCategory(str, Enum):
    """Categories the classifier may assign. Anything else becomes OTHER."""
    PRL = "PRL"                             # Occupational risk prevention
    APTITUD_MEDICA = "APTITUD_MEDICA"       # Medical fitness certificate
    DNI = "DNI"                             # National identity document
    ALTA_SS = "ALTA_SS"                     # Social security registration
    CONTRATO = "CONTRATO"
    SEGURO_RC = "SEGURO_RC"                 # Civil liability insurance
    REA = "REA"                             # Accredited companies register
    FORMACION_PRL = "FORMACION_PRL"
    EVAL_RIESGOS = "EVAL_RIESGOS"
    CERT_MAQUINARIA = "CERT_MAQUINARIA"
    PLAN_SEGURIDAD = "PLAN_SEGURIDAD"
    OTHER = "OTHER"

    @classmethod
    def coerce(cls, value) -> "DocumentCategory":
        """Map arbitrary classifier output onto a known category."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.OTHER
