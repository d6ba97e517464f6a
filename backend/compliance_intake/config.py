# ============================================================================
# Compliance Intake - Application Configuration
# ============================================================================
"""
Application configuration module using Pydantic Settings.

This module defines all configuration parameters for the compliance intake
backend, including:
- API/CORS settings
- Database connection and pool sizing
- Object storage (MinIO or in-memory)
- Content policy (size limit, accepted MIME types)
- Classification service endpoint
- Portal automation endpoints and retry budget
- Credential vault master key

Environment Variables:
    See .env.example for a complete list of available settings.

Usage:
    from compliance_intake.config import settings
    bucket = settings.minio_bucket
"""

from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # =========================================================================
    # API SETTINGS
    # =========================================================================
    api_title: str = "Compliance Intake API"
    api_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable verbose logging & dev helpers")

    # =========================================================================
    # CORS SETTINGS
    # =========================================================================
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed origins for CORS",
    )

    # =========================================================================
    # DATABASE CONFIGURATION
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./compliance_intake.db",
        description="SQLAlchemy async URL (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    db_pool_size: int = Field(default=20, description="PostgreSQL pool size")
    db_max_overflow: int = Field(default=40, description="PostgreSQL pool overflow")
    db_pool_recycle: int = Field(default=3600, description="Recycle connections after N seconds")
    sql_echo: bool = Field(default=False, description="Log emitted SQL")

    # =========================================================================
    # OBJECT STORAGE CONFIGURATION
    # =========================================================================
    storage_backend: str = Field(default="minio", description="'minio' or 'memory'")
    minio_endpoint: str = Field(default="minio:9000", description="MinIO host:port")
    minio_access_key: str = Field(default="admin", description="MinIO access key")
    minio_secret_key: str = Field(default="changeme", description="MinIO secret key")
    minio_secure: bool = Field(default=False, description="Use TLS for MinIO")
    minio_bucket: str = Field(default="compliance-documents", description="Document bucket")
    signed_url_ttl_seconds: int = Field(default=3600, description="Default signed URL lifetime")

    # =========================================================================
    # CONTENT POLICY
    # =========================================================================
    max_file_size: int = Field(default=20 * 1024 * 1024, description="Max upload size in bytes")
    allowed_mime_types: List[str] = Field(
        default=["application/pdf", "image/jpeg", "image/png"],
        description="MIME types accepted at intake",
    )

    # =========================================================================
    # CLASSIFICATION SERVICE
    # =========================================================================
    classification_url: Optional[str] = Field(
        default=None, description="Base URL of the document classification service"
    )
    classification_timeout: float = Field(default=15.0, description="Timeout (s) for classification")

    # =========================================================================
    # PORTAL AUTOMATION
    # =========================================================================
    portal_endpoints: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-platform automation endpoint, e.g. {'nalanda': 'http://automation:8011'}",
    )
    portal_timeout: float = Field(default=30.0, description="Timeout (s) per portal upload attempt")
    portal_max_retries: int = Field(default=2, description="Retries after the first attempt")
    portal_backoff_base: float = Field(default=0.5, description="Backoff base in seconds")
    portal_backoff_cap: float = Field(default=6.0, description="Maximum backoff in seconds")

    # =========================================================================
    # CREDENTIAL VAULT
    # =========================================================================
    vault_master_key: Optional[str] = Field(
        default=None,
        description="Master key: base64:<32 bytes>, 64 hex chars, or a passphrase",
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    # -------- Helpers --------
    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# Global settings instance
settings = Settings()
