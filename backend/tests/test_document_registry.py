"""
Tests for DocumentRegistry.

Covers content deduplication per tenant, tenant isolation, slot versioning,
input validation and cleanup of blobs when a registration fails.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from compliance_intake.core.database.models import Document
from compliance_intake.core.errors import ValidationError
from compliance_intake.core.models.context import Placement, UploadedFile
from compliance_intake.core.models.enums import DocumentStatus

from conftest import TEST_BUCKET, pdf_bytes

PDF = "application/pdf"


async def count_documents(session, tenant_id=None):
    query = select(func.count(Document.id))
    if tenant_id is not None:
        query = query.where(Document.tenant_id == tenant_id)
    return (await session.execute(query)).scalar()


class TestRegistration:
    """New content creates a document."""

    @pytest.mark.asyncio
    async def test_register_new_document(self, db_session, registry, ctx, seed):
        content = pdf_bytes("plan")
        result = await registry.register_or_update(
            db_session, ctx, Placement("project", seed.project_id), "PRL",
            content, UploadedFile("plan.pdf", PDF),
        )

        document = result.document
        assert result.duplicate is False
        assert document.version == 1
        assert document.status == DocumentStatus.PENDING.value
        assert document.size_bytes == len(content)
        assert document.meta.original_filename == "plan.pdf"
        assert registry.content_store.download(document.storage_path) == content

    @pytest.mark.asyncio
    async def test_unknown_category_becomes_other(self, db_session, registry, ctx, seed):
        result = await registry.register_or_update(
            db_session, ctx, Placement("project", seed.project_id), "SOMETHING_NEW",
            pdf_bytes("x"), UploadedFile("x.pdf", PDF),
        )
        assert result.document.category == "OTHER"

    @pytest.mark.asyncio
    async def test_new_content_in_same_slot_increments_version(self, db_session, registry, ctx, seed):
        placement = Placement("project", seed.project_id)
        first = await registry.register_or_update(
            db_session, ctx, placement, "SEGURO_RC", pdf_bytes("2023"), UploadedFile("rc.pdf", PDF)
        )
        second = await registry.register_or_update(
            db_session, ctx, placement, "SEGURO_RC", pdf_bytes("2024"), UploadedFile("rc.pdf", PDF)
        )

        assert first.document.version == 1
        assert second.document.version == 2
        assert first.document.storage_path != second.document.storage_path
        assert "/v2/" in second.document.storage_path


class TestDeduplication:
    """At most one document per (tenant, content hash)."""

    @pytest.mark.asyncio
    async def test_identical_bytes_update_existing_document(self, db_session, registry, ctx, seed):
        placement = Placement("project", seed.project_id)
        content = pdf_bytes("same")

        first = await registry.register_or_update(
            db_session, ctx, placement, "PRL", content, UploadedFile("a.pdf", PDF)
        )
        second = await registry.register_or_update(
            db_session, ctx, placement, "PRL", content, UploadedFile("a-again.pdf", PDF)
        )

        assert second.duplicate is True
        assert second.document.id == first.document.id
        assert second.document.version == 1
        assert second.document.storage_path == first.document.storage_path
        assert second.document.sha256 == first.document.sha256
        assert await count_documents(db_session, ctx.tenant_id) == 1

        history = second.document.meta.reupload_history
        assert len(history) == 1
        assert history[0].reason == "duplicate_hash_detected"
        assert history[0].original_filename == "a-again.pdf"

    @pytest.mark.asyncio
    async def test_duplicate_does_not_leave_extra_blob(self, db_session, registry, object_store, ctx, seed):
        placement = Placement("project", seed.project_id)
        content = pdf_bytes("same")

        first = await registry.register_or_update(
            db_session, ctx, placement, "PRL", content, UploadedFile("a.pdf", PDF)
        )
        await registry.register_or_update(
            db_session, ctx, placement, "PRL", content, UploadedFile("a.pdf", PDF)
        )

        assert object_store.keys(TEST_BUCKET) == [first.document.storage_path]

    @pytest.mark.asyncio
    async def test_same_bytes_in_two_tenants_are_independent(
        self, db_session, registry, ctx, other_ctx, seed
    ):
        content = pdf_bytes("shared")

        mine = await registry.register_or_update(
            db_session, ctx, Placement("project", seed.project_id), "PRL",
            content, UploadedFile("a.pdf", PDF),
        )
        theirs = await registry.register_or_update(
            db_session, other_ctx, Placement("project", seed.other_project_id), "PRL",
            content, UploadedFile("a.pdf", PDF),
        )

        assert theirs.duplicate is False
        assert mine.document.id != theirs.document.id
        assert mine.document.sha256 == theirs.document.sha256
        assert await count_documents(db_session, ctx.tenant_id) == 1
        assert await count_documents(db_session, other_ctx.tenant_id) == 1

    @pytest.mark.asyncio
    async def test_get_is_scoped_to_tenant(self, db_session, registry, ctx, other_ctx, seed):
        result = await registry.register_or_update(
            db_session, ctx, Placement("project", seed.project_id), "PRL",
            pdf_bytes("private"), UploadedFile("a.pdf", PDF),
        )
        document_id = result.document.id

        assert await registry.get(db_session, ctx.tenant_id, document_id) is not None
        assert await registry.get(db_session, other_ctx.tenant_id, document_id) is None


class TestValidation:
    """Rejected input never reaches storage."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content,file",
        [
            (b"", UploadedFile("empty.pdf", PDF)),
            (b"data", UploadedFile("macro.docm", "application/vnd.ms-word.document.macroEnabled.12")),
            (b"data", UploadedFile("   ", PDF)),
        ],
    )
    async def test_invalid_input_rejected(
        self, db_session, registry, object_store, ctx, seed, content, file
    ):
        with pytest.raises(ValidationError):
            await registry.register_or_update(
                db_session, ctx, Placement("project", seed.project_id), "PRL", content, file
            )
        assert object_store.keys(TEST_BUCKET) == []

    @pytest.mark.asyncio
    async def test_size_limit(self, db_session, content_store, ctx, seed):
        from compliance_intake.core.registry.document_registry import DocumentRegistry

        small = DocumentRegistry(content_store=content_store, max_file_size=10)
        with pytest.raises(ValidationError):
            await small.register_or_update(
                db_session, ctx, Placement("project", seed.project_id), "PRL",
                b"x" * 11, UploadedFile("big.pdf", PDF),
            )


class TestOrphanCleanup:
    """A failed insert removes the blob it uploaded."""

    @pytest.mark.asyncio
    async def test_blob_deleted_when_insert_fails(self, db_session, registry, object_store, ctx, seed):
        with patch.object(registry, "_insert_if_new", side_effect=RuntimeError("database went away")):
            with pytest.raises(RuntimeError):
                await registry.register_or_update(
                    db_session, ctx, Placement("project", seed.project_id), "PRL",
                    pdf_bytes("lost"), UploadedFile("lost.pdf", PDF),
                )

        assert object_store.keys(TEST_BUCKET) == []
        assert await count_documents(db_session) == 0
