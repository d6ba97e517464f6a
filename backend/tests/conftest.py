import os

# Configure the environment before importing application modules so the
# settings singleton never points at real infrastructure.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("MINIO_BUCKET", "test-bucket")
os.environ.setdefault("CLASSIFICATION_URL", "")
os.environ.setdefault("VAULT_MASTER_KEY", "test-master-key-not-for-production")

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from compliance_intake.core.database import models  # noqa: F401
from compliance_intake.core.database.base import Base
from compliance_intake.core.fulfillment.portal_client import PortalUploader, UploadReceipt
from compliance_intake.core.fulfillment.queue_service import QueueService
from compliance_intake.core.fulfillment.recovery_service import RecoveryService
from compliance_intake.core.ingestion.intake_service import IntakeService
from compliance_intake.core.models.context import Placement, TenantContext, UploadedFile
from compliance_intake.core.models.enums import Priority
from compliance_intake.core.registry.classification_client import ClassificationClient
from compliance_intake.core.registry.document_registry import DocumentRegistry
from compliance_intake.core.shared.tenant_service import tenant_service
from compliance_intake.core.storage.content_store import ContentStore
from compliance_intake.core.storage.object_store import InMemoryObjectStore
from compliance_intake.core.vault.credential_vault import CredentialVault
from compliance_intake.core.vault.crypto import SecretCipher

TEST_BUCKET = "test-bucket"
PROJECT_CONTACT = "site-manager@acme-construcciones.example"
COMPANY_CONTACT = "hse@acme-construcciones.example"


@dataclass(frozen=True)
class Seed:
    """Ids of the tenant hierarchy created for a test (plain values only)."""
    tenant_id: UUID
    company_id: UUID
    project_id: UUID
    other_tenant_id: UUID
    other_company_id: UUID
    other_project_id: UUID


class FakeUploader(PortalUploader):
    """
    Deterministic portal uploader.

    Args:
        crash_on: 1-based call numbers that raise an unexpected RuntimeError
        fail_on: 1-based call numbers that raise the given exception
    """

    def __init__(self, crash_on=(), fail_on=None, attempts: int = 1):
        self.crash_on = set(crash_on)
        self.fail_on = dict(fail_on or {})
        self.attempts = attempts
        self.calls: List[str] = []

    async def upload(self, platform, credential, filename, content, mime_type):
        self.calls.append(filename)
        call = len(self.calls)
        if call in self.crash_on:
            raise RuntimeError(f"automation worker crashed on {filename}")
        if call in self.fail_on:
            raise self.fail_on[call]
        return UploadReceipt(platform=platform, reference=f"REF-{call}", attempts=self.attempts)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def object_store():
    return InMemoryObjectStore(buckets=[TEST_BUCKET])


@pytest.fixture
def content_store(object_store):
    return ContentStore(object_store=object_store, bucket=TEST_BUCKET)


@pytest.fixture
def registry(content_store):
    return DocumentRegistry(content_store=content_store)


@pytest.fixture
def queue(content_store):
    return QueueService(content_store=content_store)


@pytest.fixture
def cipher():
    return SecretCipher(bytes(range(32)))


@pytest.fixture
def vault(cipher):
    return CredentialVault(cipher=cipher)


@pytest.fixture
def recovery(registry, queue):
    return RecoveryService(registry=registry, queue=queue)


@pytest.fixture
def intake(registry, queue):
    return IntakeService(registry=registry, queue=queue, classifier=ClassificationClient(base_url=""))


@pytest_asyncio.fixture
async def seed(db_session) -> Seed:
    """Two tenants, each with one client company and one project."""
    tenant = await tenant_service.create_tenant(db_session, "Acme Group", "acme")
    company = await tenant_service.create_company(
        db_session, tenant.id, "Acme Construcciones SL", contact_email=COMPANY_CONTACT, tax_id="B12345678"
    )
    project = await tenant_service.create_project(
        db_session, tenant.id, company.id, "Torre Norte", contact_email=PROJECT_CONTACT, code="TN-01"
    )

    other = await tenant_service.create_tenant(db_session, "Other Group", "other")
    other_company = await tenant_service.create_company(
        db_session, other.id, "Other Obras SA", contact_email="ops@other.example"
    )
    other_project = await tenant_service.create_project(
        db_session, other.id, other_company.id, "Puente Sur"
    )
    return Seed(
        tenant_id=tenant.id,
        company_id=company.id,
        project_id=project.id,
        other_tenant_id=other.id,
        other_company_id=other_company.id,
        other_project_id=other_project.id,
    )


@pytest.fixture
def ctx(seed) -> TenantContext:
    return TenantContext(tenant_id=seed.tenant_id, actor_id="operator-1")


@pytest.fixture
def other_ctx(seed) -> TenantContext:
    return TenantContext(tenant_id=seed.other_tenant_id, actor_id="operator-2")


def pdf_bytes(marker: str) -> bytes:
    """Small PDF-looking payload whose hash depends on ``marker``."""
    return b"%PDF-1.4\n% " + marker.encode("utf-8") + b"\n%%EOF\n"


def session_ctx(ctx: TenantContext, session_id: Optional[UUID]) -> TenantContext:
    return TenantContext(tenant_id=ctx.tenant_id, actor_id=ctx.actor_id, session_id=session_id)


async def make_document(session, registry, ctx, project_id, marker, category="PRL"):
    """Register a small PDF under ``project_id`` and return the document id."""
    result = await registry.register_or_update(
        session, ctx, Placement("project", project_id), category,
        pdf_bytes(marker), UploadedFile(f"{marker}.pdf", "application/pdf"),
    )
    return result.document.id


async def make_entry(session, registry, queue, ctx, seed, marker, priority=Priority.NORMAL):
    """Register and enqueue a document; returns (entry_id, document_id)."""
    document_id = await make_document(session, registry, ctx, seed.project_id, marker)
    entry = await queue.enqueue(
        session, ctx, seed.company_id, seed.project_id, document_id, priority=priority
    )
    return entry.id, document_id
