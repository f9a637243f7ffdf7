"""Lifecycle cleanup, status and reconciliation of trained documents.

Vectors are soft-deleted (is_active=False) whenever a document stops being
used; sweep() later hard-deletes inactive vectors in bulk and deactivates
vectors whose document lost its tracking record. Vector deactivation always
happens before the tracking record is dropped: if it fails the operation
fails and tracking is left as it was.
"""

from datetime import datetime, timedelta

from services.doc_training.TrackingStore import TrackingStore
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.helper.HelperConfig import HelperConfig
from shared.helper.datetime_helper import as_utc, utc_now
from shared.models.document import TrackingRecord, TrackingState
from shared.models.errors import NotFoundError, ValidationError
from shared.models.outcomes import DetachResult, DocumentStatus, RemoveResult, SweepReport

DEFAULT_SWEEP_GRACE_SECONDS = 900


class LifecycleService:
    def __init__(
        self,
        helper_config: HelperConfig,
        tracking_store: TrackingStore,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._tracking_store = tracking_store
        self._rag_client = rag_client
        self._sweep_grace = timedelta(
            seconds=helper_config.get_number_val("SWEEP_GRACE_SECONDS", default=DEFAULT_SWEEP_GRACE_SECONDS)
        )

    ##########################################
    ################ DETACH ##################
    ##########################################

    async def detach_bot(self, document_id: str, bot_id: str) -> DetachResult:
        """Stop a bot from using a document.

        When the last bot leaves, the document's vectors are deactivated and its
        tracking record deleted.

        Returns:
            DetachResult: DETACHED, NOT_LINKED (nothing changed) or DOCUMENT_NOT_FOUND.

        Raises:
            VectorStoreError: If the last-bot deactivation fails; tracking is unchanged.
        """
        if not bot_id or not bot_id.strip():
            raise ValidationError("bot_id must not be empty.")

        async with self._tracking_store.document_lock(document_id):
            record = await self._tracking_store.get_record(document_id)
            if record is None:
                return DetachResult.DOCUMENT_NOT_FOUND
            if bot_id not in record.used_by_bots:
                self.logging.info("Bot '%s' does not use document '%s', nothing to detach.", bot_id, document_id)
                return DetachResult.NOT_LINKED

            remaining = [bot for bot in record.used_by_bots if bot != bot_id]
            if not remaining:
                await self._rag_client.do_set_active(VectorFilter.for_document(document_id), active=False)

            def _remove_bot(state: TrackingState) -> None:
                current = state.get(document_id)
                if current is None:
                    return
                current.used_by_bots = [bot for bot in current.used_by_bots if bot != bot_id]
                if not current.used_by_bots:
                    del state[document_id]

            await self._tracking_store.update(_remove_bot)

        if remaining:
            self.logging.info("Detached bot '%s' from document '%s'.", bot_id, document_id)
        else:
            self.logging.info(
                "Detached last bot '%s' from document '%s': vectors deactivated, record removed.",
                bot_id, document_id, color="yellow",
            )
        return DetachResult.DETACHED

    async def detach_bot_everywhere(self, bot_id: str) -> dict[str, DetachResult]:
        """Detach a bot from every document it uses, e.g. when the bot is deleted.

        Returns:
            dict[str, DetachResult]: Result per document id.
        """
        state = await self._tracking_store.get()
        document_ids = [doc_id for doc_id, record in state.items() if bot_id in record.used_by_bots]
        results: dict[str, DetachResult] = {}
        for document_id in document_ids:
            results[document_id] = await self.detach_bot(document_id, bot_id)
        self.logging.info("Detached bot '%s' from %d documents.", bot_id, len(results))
        return results

    ##########################################
    ################ REMOVAL #################
    ##########################################

    async def remove_document_everywhere(self, document_id: str) -> RemoveResult:
        """Deactivate all vectors of a document and delete its record, whatever bots use it."""
        async with self._tracking_store.document_lock(document_id):
            record = await self._tracking_store.get_record(document_id)
            if record is None:
                return RemoveResult.NOT_FOUND

            await self._rag_client.do_set_active(VectorFilter.for_document(document_id), active=False)

            def _delete_record(state: TrackingState) -> None:
                state.pop(document_id, None)

            await self._tracking_store.update(_delete_record)

        self.logging.info(
            "Removed document '%s' (used by %s).", document_id, ", ".join(record.used_by_bots) or "no bots",
            color="yellow",
        )
        return RemoveResult.REMOVED

    async def purge_all(self) -> int:
        """Deactivate every vector and clear the tracking state.

        Returns:
            int: Number of tracking records that were purged.
        """
        await self._rag_client.do_set_active(VectorFilter(), active=False)

        purged = 0

        def _clear(current: TrackingState) -> None:
            nonlocal purged
            purged = len(current)
            current.clear()

        await self._tracking_store.update(_clear)
        self._tracking_store.invalidate_cache()
        self.logging.warning("Purged %d tracked documents, all vectors deactivated.", purged)
        return purged

    ##########################################
    ################ STATUS ##################
    ##########################################

    async def document_status(self, bot_id: str, document_id: str) -> DocumentStatus:
        record = await self._tracking_store.get_record(document_id)
        if record is None or bot_id not in record.used_by_bots:
            return DocumentStatus.NOT_TRAINED
        active = await self._rag_client.do_count(VectorFilter.for_document(document_id, is_active=True))
        return DocumentStatus.CURRENT if active > 0 else DocumentStatus.STALE

    async def list_bot_documents(self, bot_id: str) -> list[TrackingRecord]:
        """Tracked documents of a bot, ordered by display name."""
        state = await self._tracking_store.get()
        records = [record for record in state.values() if bot_id in record.used_by_bots]
        return sorted(records, key=lambda record: record.filename.lower())

    async def vector_count(self, document_id: str) -> tuple[int, str]:
        """Number of active vectors of a document and its display name.

        Raises:
            NotFoundError: If the document has no active vectors.
        """
        scroll = await self._rag_client.do_scroll_all(VectorFilter.for_document(document_id, is_active=True))
        if not scroll.result:
            raise NotFoundError(f"No vectors found for document '{document_id}'.")
        display_name = scroll.result[0]["payload"].get("display_name") or document_id
        return len(scroll.result), display_name

    async def list_fragments(self, document_id: str) -> list[dict]:
        """Active fragments of a document ordered by sequence index.

        Returns:
            list[dict]: Vector payloads (text, heading, sequence_index, ...).
        """
        scroll = await self._rag_client.do_scroll_all(VectorFilter.for_document(document_id, is_active=True))
        payloads = [point["payload"] for point in scroll.result]
        return sorted(payloads, key=lambda payload: payload.get("sequence_index", 0))

    ##########################################
    ################ SWEEP ###################
    ##########################################

    def _is_past_grace(self, trained_at: str | None, now: datetime) -> bool:
        if not trained_at:
            return True
        try:
            written = as_utc(datetime.fromisoformat(trained_at))
        except ValueError:
            return True
        return now - written >= self._sweep_grace

    async def sweep(self) -> SweepReport:
        """Reconcile the vector store with the tracking store.

        1. Active vectors of documents without a tracking record are deactivated,
           unless any of them was written within the grace period (training in flight).
        2. All inactive vectors are hard-deleted.
        """
        now = utc_now()
        self._tracking_store.invalidate_cache()
        state = await self._tracking_store.get()

        active = await self._rag_client.do_scroll_all(VectorFilter(is_active=True))
        untracked: dict[str, int] = {}
        in_flight: set[str] = set()
        for point in active.result:
            payload = point["payload"]
            document_id = payload.get("document_id")
            if document_id is None or document_id in state:
                continue
            untracked[document_id] = untracked.get(document_id, 0) + 1
            if not self._is_past_grace(payload.get("trained_at"), now):
                in_flight.add(document_id)

        orphans: list[str] = []
        orphan_points = 0
        for document_id in sorted(set(untracked) - in_flight):
            async with self._tracking_store.document_lock(document_id):
                # a training may have committed since the state was read
                if await self._tracking_store.get_record(document_id) is not None:
                    continue
                await self._rag_client.do_set_active(VectorFilter.for_document(document_id, is_active=True), active=False)
            orphans.append(document_id)
            orphan_points += untracked[document_id]
        if orphans:
            self.logging.warning("Deactivated vectors of %d untracked documents: %s", len(orphans), ", ".join(orphans))

        inactive = await self._rag_client.do_count(VectorFilter(is_active=False))
        if inactive:
            await self._rag_client.do_delete_points_by_filter(VectorFilter(is_active=False))

        report = SweepReport(orphan_documents=orphans, orphans_deactivated=orphan_points, inactive_deleted=inactive)
        self.logging.info(
            "Sweep complete: %d orphan vectors deactivated, %d inactive vectors deleted.",
            report.orphans_deactivated, report.inactive_deleted, color="green",
        )
        return report
