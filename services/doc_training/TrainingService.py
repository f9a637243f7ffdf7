"""Training orchestration.

Decides per (document, bot) pair whether the document has to be (re)embedded
or whether attaching the bot to the existing vectors is enough, and keeps
the vector store and the tracking store in step:

  1. current record, vectors present, bot linked   -> ALREADY_CURRENT
  2. current record, vectors present, bot missing  -> BOT_ATTACHED
  3. otherwise extract, fragment, embed, deactivate the document's old
     vectors, upsert the new ones, then commit the tracking record -> TRAINED
  4. extraction produced no text                   -> SKIPPED("empty-content")

The tracking record is only written once all vectors are upserted. A failed
commit of a brand-new document deactivates the vectors it just wrote; any
other leftovers are reconciled by LifecycleService.sweep().
"""

import asyncio
from datetime import datetime

from services.doc_training.Fragmenter import Fragmenter
from services.doc_training.TrackingStore import TrackingStore
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.clients.source.SourceClientManager import SourceClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.helper.datetime_helper import utc_now
from shared.models.document import Document, SourceKind, TrackingRecord, TrackingState, source_kind_for_mime
from shared.models.errors import TrainingBridgeError, UnsupportedContentTypeError, ValidationError
from shared.models.outcomes import RefreshReport, TrainingOutcome, TrainingStatus

REFRESH_CONCURRENCY = 3  # max parallel retrainings during a bot refresh
EMPTY_CONTENT = "empty-content"
UNSUPPORTED_MIME_TYPE = "unsupported-mime-type"


class TrainingService:
    """Orchestrates fragmenting, embedding, vector upsert and tracking updates."""

    def __init__(
        self,
        helper_config: HelperConfig,
        tracking_store: TrackingStore,
        fragmenter: Fragmenter,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        source_manager: SourceClientManager,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._tracking_store = tracking_store
        self._fragmenter = fragmenter
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._source_manager = source_manager

    ##########################################
    ############### TRAINING #################
    ##########################################

    async def train_source_document(self, source_kind: SourceKind, document_id: str, bot_id: str) -> TrainingOutcome:
        """Resolve a document at its source and train it for a bot.

        Raises:
            NotFoundError: If the source does not know the document.
        """
        source = self._source_manager.get_client(source_kind)
        document = await source.do_fetch_document(document_id)
        return await self.train_document(document, bot_id)

    async def train_document(self, document: Document, bot_id: str) -> TrainingOutcome:
        """Make a document's vectors available to a bot, embedding only when needed.

        Args:
            document (Document): The document as currently described by its source.
            bot_id (str): The bot that should be able to retrieve the document.

        Returns:
            TrainingOutcome: TRAINED, ALREADY_CURRENT, BOT_ATTACHED or SKIPPED.

        Raises:
            ValidationError: If bot_id is blank.
            UnsupportedContentTypeError: If no source can extract the MIME type.
            ExtractionError, EmbeddingError, VectorStoreError, StorageError:
                Collaborator failures; the tracking record is not modified.
        """
        if not bot_id or not bot_id.strip():
            raise ValidationError("bot_id must not be empty.")

        async with self._tracking_store.document_lock(document.document_id):
            record = await self._tracking_store.get_record(document.document_id)
            if record is not None and record.is_current_for(document):
                if await self._has_active_vectors(document.document_id):
                    if bot_id in record.used_by_bots:
                        self.logging.info(
                            "Document '%s' is already current for bot '%s'.", document.document_id, bot_id
                        )
                        return TrainingOutcome(status=TrainingStatus.ALREADY_CURRENT, document_id=document.document_id)
                    if await self._attach_bot(document.document_id, bot_id):
                        self.logging.info(
                            "Attached bot '%s' to document '%s' without re-embedding.",
                            bot_id, document.document_id, color="cyan",
                        )
                        return TrainingOutcome(status=TrainingStatus.BOT_ATTACHED, document_id=document.document_id)
                    self.logging.warning(
                        "Tracking record of '%s' vanished while attaching bot '%s', training from scratch.",
                        document.document_id, bot_id,
                    )
                    record = None
                else:
                    self.logging.warning(
                        "Document '%s' is tracked but has no active vectors, retraining.", document.document_id
                    )
            return await self._train(document, bot_id, previous=record)

    async def _has_active_vectors(self, document_id: str) -> bool:
        return await self._rag_client.do_count(VectorFilter.for_document(document_id, is_active=True)) > 0

    async def _attach_bot(self, document_id: str, bot_id: str) -> bool:
        attached = False

        def _add_bot(state: TrackingState) -> None:
            nonlocal attached
            record = state.get(document_id)
            if record is None:
                return
            if bot_id not in record.used_by_bots:
                record.used_by_bots.append(bot_id)
            attached = True

        await self._tracking_store.update(_add_bot)
        return attached

    async def _train(self, document: Document, bot_id: str, previous: TrackingRecord | None) -> TrainingOutcome:
        document_id = document.document_id
        source = self._source_manager.get_client(document.source_kind)
        if not source.supports(document.mime_type):
            raise UnsupportedContentTypeError(
                f"MIME type '{document.mime_type}' of '{document.display_name}' is not supported for training."
            )

        # taken before extraction so edits made while training trigger the next retrain
        trained_at = utc_now()
        text = await source.do_extract_text(document)
        fragments = self._fragmenter.fragment(text)
        if not fragments:
            self.logging.warning("Document '%s' has no extractable text, skipping.", document_id)
            return TrainingOutcome.skipped(document_id, EMPTY_CONTENT)

        vectors = await self._embed_client.do_embed(texts=[fragment.text for fragment in fragments])
        points = [
            {
                "id": self._rag_client.make_point_id(document_id, fragment.sequence_index),
                "vector": vector,
                "payload": VectorPoint(
                    document_id=document_id,
                    display_name=document.display_name,
                    mime_type=document.mime_type,
                    source_kind=document.source_kind.value,
                    sequence_index=fragment.sequence_index,
                    chunk_text=fragment.text,
                    heading=fragment.heading,
                    is_active=True,
                    trained_at=trained_at.isoformat(),
                ).model_dump(),
            }
            for fragment, vector in zip(fragments, vectors)
        ]

        # old fragments must never be retrievable next to the new ones
        await self._rag_client.do_set_active(VectorFilter.for_document(document_id), active=False)
        await self._rag_client.do_upsert_points(points)

        try:
            await self._commit_training(document, bot_id, trained_at)
        except TrainingBridgeError:
            self.logging.error("Tracking commit failed for '%s' after upserting %d vectors.", document_id, len(points))
            if previous is None:
                await self._deactivate_best_effort(document_id)
            raise

        self.logging.info(
            "Trained document '%s' for bot '%s': %d fragments.", document_id, bot_id, len(fragments), color="green"
        )
        return TrainingOutcome(status=TrainingStatus.TRAINED, document_id=document_id, fragment_count=len(fragments))

    async def _commit_training(self, document: Document, bot_id: str, trained_at: datetime) -> None:
        def _write_record(state: TrackingState) -> None:
            existing = state.get(document.document_id)
            bots = list(existing.used_by_bots) if existing else []
            if bot_id not in bots:
                bots.append(bot_id)
            state[document.document_id] = TrackingRecord(
                document_id=document.document_id,
                filename=document.display_name,
                mime_type=document.mime_type,
                used_by_bots=bots,
                trained_at=trained_at,
            )

        await self._tracking_store.update(_write_record)

    async def _deactivate_best_effort(self, document_id: str) -> None:
        try:
            await self._rag_client.do_set_active(VectorFilter.for_document(document_id), active=False)
        except TrainingBridgeError as e:
            self.logging.error("Could not deactivate untracked vectors of '%s', the sweep will: %s", document_id, e)

    ##########################################
    ############### RETRAINING ###############
    ##########################################

    async def retrain_if_needed(self, record: TrackingRecord, bot_id: str) -> TrainingOutcome:
        """Retrain a tracked Drive document if it changed since its last training.

        Blob documents are re-uploaded and then trained again through the blob
        training route, so only Drive MIME types are considered here.
        """
        if source_kind_for_mime(record.mime_type) is not SourceKind.DRIVE:
            self.logging.warning(
                "Skipping refresh of '%s': MIME type '%s' is not a Drive document.", record.document_id, record.mime_type
            )
            return TrainingOutcome.skipped(record.document_id, UNSUPPORTED_MIME_TYPE)
        source = self._source_manager.get_client(SourceKind.DRIVE)
        document = await source.do_fetch_document(record.document_id)
        return await self.train_document(document, bot_id)

    async def refresh_bot_documents(self, bot_id: str) -> RefreshReport:
        """Run retrain_if_needed for every document a bot uses.

        Failures of single documents are collected in the report instead of
        aborting the refresh.
        """
        state = await self._tracking_store.get()
        records = [record for record in state.values() if bot_id in record.used_by_bots]
        self.logging.info("Refreshing %d documents of bot '%s'...", len(records), bot_id)

        sem = asyncio.Semaphore(REFRESH_CONCURRENCY)

        async def _refresh(record: TrackingRecord) -> TrainingOutcome:
            async with sem:
                return await self.retrain_if_needed(record, bot_id)

        results = await asyncio.gather(*[_refresh(record) for record in records], return_exceptions=True)

        report = RefreshReport(bot_id=bot_id)
        for record, result in zip(records, results):
            if isinstance(result, TrainingOutcome):
                report.outcomes.append(result)
            elif isinstance(result, Exception):
                self.logging.error("Refresh of '%s' for bot '%s' failed: %s", record.document_id, bot_id, result)
                report.failures[record.document_id] = str(result)
            else:
                raise result
        retrained = sum(1 for outcome in report.outcomes if outcome.status == TrainingStatus.TRAINED)
        self.logging.info(
            "Refresh of bot '%s' complete: %d retrained, %d failed.", bot_id, retrained, len(report.failures)
        )
        return report
