"""
Tests for BatchProcessor.

Entry ids are captured as plain UUIDs before a batch runs and every check
re-reads rows afterwards: a failing item rolls the session back, which
expires previously loaded objects.
"""

from uuid import uuid4

import pytest

from compliance_intake.core.errors import PlatformUploadFailure
from compliance_intake.core.fulfillment.batch_processor import (
    BatchProcessor,
    CancellationToken,
    ItemOutcome,
)
from compliance_intake.core.models.enums import DocumentStatus, Platform, QueueStatus
from compliance_intake.core.shared.audit_service import audit_service
from compliance_intake.core.shared.messaging_service import messaging_service

from conftest import PROJECT_CONTACT, FakeUploader, make_entry


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def processor(uploader, queue, vault, registry):
    return BatchProcessor(uploader=uploader, queue=queue, vault=vault, registry=registry)


async def queued_entries(session, registry, queue, ctx, seed, count):
    ids = []
    for n in range(count):
        entry_id, _ = await make_entry(session, registry, queue, ctx, seed, f"doc-{n}")
        ids.append(entry_id)
    return ids


class TestBatchIsolation:
    """One failing item never stops the rest of the batch."""

    @pytest.mark.asyncio
    async def test_crash_on_fifth_item(self, db_session, registry, queue, vault, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 10)
        processor = BatchProcessor(
            uploader=FakeUploader(crash_on={5}), queue=queue, vault=vault, registry=registry
        )

        report = await processor.process_documents_batch(db_session, ctx, ids)

        assert [r.entry_id for r in report.results] == ids
        assert report.counts["uploaded"] == 9
        assert report.counts["error"] == 1
        assert report.results[4].outcome is ItemOutcome.ERROR
        assert "crashed" in report.results[4].message

        statuses = []
        for entry_id in ids:
            entry = await queue.get(db_session, ctx.tenant_id, entry_id)
            statuses.append(entry.status)
        assert statuses.count(QueueStatus.UPLOADED.value) == 9
        assert statuses[4] == QueueStatus.ERROR.value

    @pytest.mark.asyncio
    async def test_every_id_gets_a_result(self, db_session, registry, queue, vault, processor, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 1)
        unknown = uuid4()

        report = await processor.process_documents_batch(db_session, ctx, [unknown, ids[0]])

        assert [r.entry_id for r in report.results] == [unknown, ids[0]]
        assert report.results[0].outcome is ItemOutcome.SKIPPED
        assert report.results[1].outcome is ItemOutcome.UPLOADED

    @pytest.mark.asyncio
    async def test_non_queued_entries_are_skipped(self, db_session, registry, queue, vault, processor, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 1)
        await queue.set_status(db_session, ctx, ids[0], QueueStatus.ERROR, error="earlier failure")

        report = await processor.process_documents_batch(db_session, ctx, ids)

        assert report.results[0].outcome is ItemOutcome.SKIPPED
        entry = await queue.get(db_session, ctx.tenant_id, ids[0])
        assert entry.status == QueueStatus.ERROR.value

    @pytest.mark.asyncio
    async def test_batch_is_audited(self, db_session, registry, queue, vault, processor, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 2)

        await processor.process_documents_batch(db_session, ctx, ids)

        events = await audit_service.list_events(
            db_session, tenant_id=ctx.tenant_id, action="queue.batch_processed"
        )
        assert len(events) == 1
        assert events[0].details["requested"] == 2
        assert events[0].details["uploaded"] == 2


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_batch(self, db_session, registry, queue, vault, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 4)
        token = CancellationToken()

        class CancellingUploader(FakeUploader):
            async def upload(self, *args, **kwargs):
                receipt = await super().upload(*args, **kwargs)
                if len(self.calls) == 2:
                    token.cancel()
                return receipt

        processor = BatchProcessor(
            uploader=CancellingUploader(), queue=queue, vault=vault, registry=registry
        )
        report = await processor.process_documents_batch(db_session, ctx, ids, cancel_token=token)

        assert [r.outcome for r in report.results] == [
            ItemOutcome.UPLOADED,
            ItemOutcome.UPLOADED,
            ItemOutcome.CANCELLED,
            ItemOutcome.CANCELLED,
        ]
        assert report.cancelled is True
        untouched = await queue.get(db_session, ctx.tenant_id, ids[3])
        assert untouched.status == QueueStatus.QUEUED.value

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, db_session, registry, queue, processor, uploader, ctx, seed):
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 2)
        token = CancellationToken()
        token.cancel()

        report = await processor.process_documents_batch(db_session, ctx, ids, cancel_token=token)

        assert report.counts["cancelled"] == 2
        assert uploader.calls == []


class TestItemFailures:
    @pytest.mark.asyncio
    async def test_missing_credential(self, db_session, registry, queue, processor, uploader, ctx, seed):
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 1)

        report = await processor.process_documents_batch(db_session, ctx, ids)

        result = report.results[0]
        assert result.outcome is ItemOutcome.ERROR
        assert result.message == "Credential not configured for nalanda"
        assert uploader.calls == []
        entry = await queue.get(db_session, ctx.tenant_id, ids[0])
        assert entry.status == QueueStatus.ERROR.value
        assert entry.error_message == "Credential not configured for nalanda"

    @pytest.mark.asyncio
    async def test_upload_failure_counts_retries(self, db_session, registry, queue, vault, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 1)
        uploader = FakeUploader(fail_on={1: PlatformUploadFailure("portal unavailable", attempts=3)})
        processor = BatchProcessor(uploader=uploader, queue=queue, vault=vault, registry=registry)

        report = await processor.process_documents_batch(db_session, ctx, ids)

        assert report.results[0].outcome is ItemOutcome.ERROR
        assert report.results[0].retries == 2
        entry = await queue.get(db_session, ctx.tenant_id, ids[0])
        assert entry.status == QueueStatus.ERROR.value
        assert entry.retry_count == 2
        assert entry.error_message == "portal unavailable"

    @pytest.mark.asyncio
    async def test_successful_upload_with_retries(self, db_session, registry, queue, vault, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        ids = await queued_entries(db_session, registry, queue, ctx, seed, 1)
        processor = BatchProcessor(
            uploader=FakeUploader(attempts=2), queue=queue, vault=vault, registry=registry
        )

        report = await processor.process_documents_batch(db_session, ctx, ids)

        assert report.results[0].retries == 1
        entry = await queue.get(db_session, ctx.tenant_id, ids[0])
        assert entry.retry_count == 1
        assert entry.note == "Uploaded to nalanda (reference REF-1)"


class TestStagingAndCorruption:
    @pytest.mark.asyncio
    async def test_uploaded_document_is_staged(self, db_session, registry, queue, vault, processor, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        entry_id, document_id = await make_entry(db_session, registry, queue, ctx, seed, "staged")

        report = await processor.process_documents_batch(db_session, ctx, [entry_id])

        staged = report.results[0].staged_path
        assert staged.startswith(f"{ctx.tenant_id}/platforms/nalanda/{document_id}/")
        assert registry.content_store.exists(staged)

        document = await registry.get(db_session, ctx.tenant_id, document_id)
        assert document.status == DocumentStatus.UPLOADED.value
        assert document.meta.platform_paths == {"nalanda": staged}
        assert registry.content_store.exists(document.storage_path)

    @pytest.mark.asyncio
    async def test_missing_blob_starts_recovery(
        self, db_session, registry, queue, vault, processor, uploader, ctx, seed
    ):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        entry_id, document_id = await make_entry(db_session, registry, queue, ctx, seed, "lost")
        document = await registry.get(db_session, ctx.tenant_id, document_id)
        registry.content_store.delete(document.storage_path)

        report = await processor.process_documents_batch(db_session, ctx, [entry_id])

        assert report.results[0].outcome is ItemOutcome.ERROR
        assert report.results[0].message.startswith("Corrupted:")
        assert uploader.calls == []

        document = await registry.get(db_session, ctx.tenant_id, document_id)
        entry = await queue.get(db_session, ctx.tenant_id, entry_id)
        assert document.status == DocumentStatus.CORRUPTED.value
        assert entry.status == QueueStatus.ERROR.value

        messages = await messaging_service.list_messages(db_session, ctx.tenant_id, document_id)
        assert len(messages) == 1
        assert messages[0].recipients == [PROJECT_CONTACT]

    @pytest.mark.asyncio
    async def test_corrupted_document_is_skipped(self, db_session, registry, queue, vault, processor, ctx, seed):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        entry_id, document_id = await make_entry(db_session, registry, queue, ctx, seed, "bad")
        document = await registry.get(db_session, ctx.tenant_id, document_id)
        await registry.set_status(db_session, document, DocumentStatus.CORRUPTED)

        report = await processor.process_documents_batch(db_session, ctx, [entry_id])

        assert report.results[0].outcome is ItemOutcome.SKIPPED
        entry = await queue.get(db_session, ctx.tenant_id, entry_id)
        assert entry.status == QueueStatus.QUEUED.value
