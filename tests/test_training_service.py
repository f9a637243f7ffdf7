"""Tests for the TrainingService."""

import asyncio
from datetime import timedelta

import pytest

from services.doc_training.TrainingService import EMPTY_CONTENT, UNSUPPORTED_MIME_TYPE
from shared.models.document import MIME_PDF, Document, SourceKind
from shared.models.errors import (
    EmbeddingError,
    NotFoundError,
    StorageError,
    UnsupportedContentTypeError,
    ValidationError,
)
from shared.models.outcomes import TrainingStatus


class TestTrainDocument:
    """Tests for train_document decisions."""

    @pytest.mark.asyncio
    async def test_new_document_is_trained(self, training_service, tracking_store, rag_client, handbook):
        """A first training embeds every fragment and records the bot."""
        outcome = await training_service.train_document(handbook, "botA")

        assert outcome.status == TrainingStatus.TRAINED
        assert outcome.fragment_count == 3
        assert rag_client.active_count("handbook.pdf") == 3
        record = await tracking_store.get_record("handbook.pdf")
        assert record.used_by_bots == ["botA"]
        assert record.mime_type == MIME_PDF

    @pytest.mark.asyncio
    async def test_payload_carries_attribution(self, training_service, rag_client, handbook):
        """Each vector payload names its document and heading."""
        await training_service.train_document(handbook, "botA")
        payloads = sorted((p["payload"] for p in rag_client.points.values()), key=lambda p: p["sequence_index"])
        assert payloads[1]["display_name"] == "handbook.pdf"
        assert payloads[1]["heading"] == "Handbook > Travel"
        assert payloads[1]["source_kind"] == "blob"
        assert all(p["is_active"] for p in payloads)

    @pytest.mark.asyncio
    async def test_retraining_same_bot_is_a_no_op(self, training_service, embed_client, rag_client, handbook):
        """An unchanged document already used by the bot is not embedded again."""
        await training_service.train_document(handbook, "botA")
        calls = len(embed_client.calls)

        outcome = await training_service.train_document(handbook, "botA")

        assert outcome.status == TrainingStatus.ALREADY_CURRENT
        assert len(embed_client.calls) == calls
        assert rag_client.upsert_calls == 1

    @pytest.mark.asyncio
    async def test_second_bot_is_attached_without_embedding(
        self, training_service, tracking_store, embed_client, rag_client, handbook
    ):
        """A second bot reuses the existing vectors."""
        await training_service.train_document(handbook, "botA")
        calls = len(embed_client.calls)

        outcome = await training_service.train_document(handbook, "botB")

        assert outcome.status == TrainingStatus.BOT_ATTACHED
        assert len(embed_client.calls) == calls
        assert (await tracking_store.get_record("handbook.pdf")).used_by_bots == ["botA", "botB"]
        assert len(rag_client.points) == 3

    @pytest.mark.asyncio
    async def test_modified_document_is_retrained(self, training_service, tracking_store, rag_client, handbook):
        """A source modification newer than trainedAt replaces the vectors."""
        await training_service.train_document(handbook, "botA")
        record = await tracking_store.get_record("handbook.pdf")
        changed = handbook.model_copy(update={"last_modified_at": record.trained_at + timedelta(minutes=5)})

        outcome = await training_service.train_document(changed, "botB")

        assert outcome.status == TrainingStatus.TRAINED
        assert rag_client.active_count("handbook.pdf") == 3
        assert (await tracking_store.get_record("handbook.pdf")).used_by_bots == ["botA", "botB"]

    @pytest.mark.asyncio
    async def test_shrunk_document_leaves_no_stale_fragment_active(
        self, training_service, blob_source, rag_client, tracking_store, handbook
    ):
        """Fragments beyond the new fragment count are deactivated."""
        await training_service.train_document(handbook, "botA")
        record = await tracking_store.get_record("handbook.pdf")
        blob_source.texts["handbook.pdf"] = "Only one short paragraph now."
        changed = handbook.model_copy(update={"last_modified_at": record.trained_at + timedelta(minutes=5)})

        await training_service.train_document(changed, "botA")

        active = [p["payload"]["chunk_text"] for p in rag_client.points.values() if p["payload"]["is_active"]]
        assert active == ["Only one short paragraph now."]

    @pytest.mark.asyncio
    async def test_missing_vectors_trigger_retraining(self, training_service, rag_client, handbook):
        """A current record without active vectors is healed by retraining."""
        await training_service.train_document(handbook, "botA")
        rag_client.points.clear()

        outcome = await training_service.train_document(handbook, "botA")

        assert outcome.status == TrainingStatus.TRAINED
        assert rag_client.active_count("handbook.pdf") == 3

    @pytest.mark.asyncio
    async def test_document_without_modification_time_counts_as_current(
        self, training_service, embed_client, handbook
    ):
        """Without a source modification time an existing record is never stale."""
        undated = handbook.model_copy(update={"last_modified_at": None})
        await training_service.train_document(undated, "botA")
        calls = len(embed_client.calls)

        outcome = await training_service.train_document(undated, "botA")

        assert outcome.status == TrainingStatus.ALREADY_CURRENT
        assert len(embed_client.calls) == calls

    @pytest.mark.asyncio
    async def test_empty_text_is_skipped(self, training_service, blob_source, tracking_store, rag_client, handbook):
        """A document without extractable text is skipped and not tracked."""
        blob_source.texts["handbook.pdf"] = "  \n "

        outcome = await training_service.train_document(handbook, "botA")

        assert outcome.status == TrainingStatus.SKIPPED
        assert outcome.reason == EMPTY_CONTENT
        assert await tracking_store.get_record("handbook.pdf") is None
        assert rag_client.points == {}

    @pytest.mark.asyncio
    async def test_blank_bot_id_is_rejected(self, training_service, handbook):
        """An empty bot id fails validation."""
        with pytest.raises(ValidationError):
            await training_service.train_document(handbook, "  ")

    @pytest.mark.asyncio
    async def test_unsupported_mime_type_is_rejected(self, training_service, tracking_store):
        """A MIME type the source cannot extract raises before any work is done."""
        document = Document(
            document_id="notes.txt", display_name="notes.txt", mime_type="text/plain", source_kind=SourceKind.BLOB
        )
        with pytest.raises(UnsupportedContentTypeError):
            await training_service.train_document(document, "botA")
        assert await tracking_store.get_record("notes.txt") is None

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_tracking_untouched(
        self, training_service, embed_client, tracking_store, rag_client, handbook, monkeypatch
    ):
        """A collaborator failure propagates and records nothing."""

        async def _fail(texts):
            raise EmbeddingError("quota exceeded", retryable=True)

        monkeypatch.setattr(embed_client, "do_embed", _fail)
        with pytest.raises(EmbeddingError):
            await training_service.train_document(handbook, "botA")
        assert await tracking_store.get_record("handbook.pdf") is None
        assert rag_client.points == {}

    @pytest.mark.asyncio
    async def test_failed_commit_deactivates_new_vectors(
        self, training_service, storage_client, tracking_store, rag_client, handbook
    ):
        """When a new document's record cannot be written its vectors are not left active."""
        storage_client.fail_upload = True

        with pytest.raises(StorageError):
            await training_service.train_document(handbook, "botA")

        assert rag_client.active_count("handbook.pdf") == 0
        assert await tracking_store.get_record("handbook.pdf") is None

    @pytest.mark.asyncio
    async def test_concurrent_training_embeds_once(self, training_service, embed_client, tracking_store, handbook):
        """Parallel requests for the same document are serialised."""
        outcomes = await asyncio.gather(
            training_service.train_document(handbook, "botA"),
            training_service.train_document(handbook, "botB"),
        )

        assert sorted(o.status for o in outcomes) == sorted([TrainingStatus.TRAINED, TrainingStatus.BOT_ATTACHED])
        assert len(embed_client.calls) == 1
        assert (await tracking_store.get_record("handbook.pdf")).used_by_bots == ["botA", "botB"]


class TestTrainSourceDocument:
    """Tests for train_source_document."""

    @pytest.mark.asyncio
    async def test_resolves_document_at_source(self, training_service, drive_doc, tracking_store):
        """The document is fetched from the source of the given kind."""
        outcome = await training_service.train_source_document(SourceKind.DRIVE, "1AbCdEf", "botA")
        assert outcome.status == TrainingStatus.TRAINED
        assert (await tracking_store.get_record("1AbCdEf")).filename == "Onboarding"

    @pytest.mark.asyncio
    async def test_unknown_document_raises_not_found(self, training_service):
        """A document the source does not know raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await training_service.train_source_document(SourceKind.BLOB, "missing.pdf", "botA")


class TestRefresh:
    """Tests for retrain_if_needed and refresh_bot_documents."""

    @pytest.mark.asyncio
    async def test_blob_record_is_not_refreshed(self, training_service, tracking_store, handbook):
        """Only Drive documents are refreshed from their source."""
        await training_service.train_document(handbook, "botA")
        record = await tracking_store.get_record("handbook.pdf")

        outcome = await training_service.retrain_if_needed(record, "botA")

        assert outcome.status == TrainingStatus.SKIPPED
        assert outcome.reason == UNSUPPORTED_MIME_TYPE

    @pytest.mark.asyncio
    async def test_changed_drive_document_is_retrained(
        self, training_service, tracking_store, drive_source, drive_doc, embed_client
    ):
        """A Drive document edited after training is embedded again."""
        await training_service.train_document(drive_doc, "botA")
        record = await tracking_store.get_record("1AbCdEf")
        drive_source.documents["1AbCdEf"] = drive_doc.model_copy(
            update={"last_modified_at": record.trained_at + timedelta(hours=1)}
        )

        outcome = await training_service.retrain_if_needed(record, "botA")

        assert outcome.status == TrainingStatus.TRAINED
        assert len(embed_client.calls) == 2

    @pytest.mark.asyncio
    async def test_refresh_collects_failures(self, training_service, tracking_store, drive_source, drive_doc, handbook):
        """A failing document is reported while the others are still processed."""
        await training_service.train_document(drive_doc, "botA")
        await training_service.train_document(handbook, "botA")
        del drive_source.documents["1AbCdEf"]

        report = await training_service.refresh_bot_documents("botA")

        assert report.bot_id == "botA"
        assert list(report.failures) == ["1AbCdEf"]
        assert [o.document_id for o in report.outcomes] == ["handbook.pdf"]
