"""Document tracking store.

The whole training state lives in one JSON object in blob storage, keyed by
document id:

    {"handbook.pdf": {"documentId": "handbook.pdf", "filename": "handbook.pdf",
                      "mimeType": "application/pdf", "usedByBots": ["botA"],
                      "trainedAt": "2024-05-01T10:00:00Z"}}

Reads go through an in-process cache. Writers either call save() directly
(rejected with StoreWriteConflict while another save is running) or use
update(), which serialises read-modify-write cycles behind a commit lock.
Callers that span external work (training) additionally hold the
per-document lock from document_lock().
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError

from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import TrackingRecord, TrackingState
from shared.models.errors import StoreWriteConflict, ValidationError

DEFAULT_TRACKING_BLOB_NAME = "documentTracking.json"


class TrackingStore:
    def __init__(
        self,
        helper_config: HelperConfig,
        storage_client: StorageClientInterface,
        blob_name: str | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._storage_client = storage_client
        self._blob_name = blob_name or helper_config.get_string_val(
            "TRACKING_BLOB_NAME", default=DEFAULT_TRACKING_BLOB_NAME
        )

        self._cache: TrackingState | None = None
        self._write_in_progress = False
        self._commit_lock = asyncio.Lock()
        self._document_locks: dict[str, asyncio.Lock] = {}
        self._document_lock_users: dict[str, int] = {}

    ##########################################
    ############### PARSING ##################
    ##########################################

    @staticmethod
    def _parse_state(raw_state: object) -> TrackingState:
        """Validate a raw mapping into TrackingRecords.

        Raises:
            ValidationError: If the mapping or any record is malformed, or a key
                differs from its record's documentId.
        """
        if not isinstance(raw_state, Mapping):
            raise ValidationError(f"Tracking state must be a mapping, got {type(raw_state).__name__}.")
        state: TrackingState = {}
        for key, value in raw_state.items():
            if not isinstance(key, str) or not key:
                raise ValidationError(f"Tracking state key {key!r} is not a document id.")
            try:
                record = value.model_copy(deep=True) if isinstance(value, TrackingRecord) else TrackingRecord.model_validate(value)
            except PydanticValidationError as e:
                raise ValidationError(f"Tracking record '{key}' is malformed: {e}") from e
            if record.document_id != key:
                raise ValidationError(f"Tracking record key '{key}' does not match documentId '{record.document_id}'.")
            state[key] = record
        return state

    @staticmethod
    def _copy_state(state: TrackingState) -> TrackingState:
        return {doc_id: record.model_copy(deep=True) for doc_id, record in state.items()}

    ##########################################
    ############### READING ##################
    ##########################################

    async def get(self) -> TrackingState:
        """Return the tracking state, fetching it once and then serving the cache.

        Returns:
            TrackingState: A copy the caller may mutate freely; a missing object reads as empty.

        Raises:
            ValidationError: If the persisted object is not valid tracking state.
        """
        if self._cache is None:
            self._cache = await self._load()
        return self._copy_state(self._cache)

    async def get_record(self, document_id: str) -> TrackingRecord | None:
        return (await self.get()).get(document_id)

    async def _load(self) -> TrackingState:
        raw = await self._storage_client.do_download(self._blob_name)
        if raw is None:
            self.logging.info("Tracking object '%s' does not exist yet, starting empty.", self._blob_name)
            return {}
        try:
            raw_state = json.loads(raw.decode("utf-8")) if raw.strip() else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Tracking object '{self._blob_name}' is not valid JSON: {e}") from e
        state = self._parse_state(raw_state)
        self.logging.debug("Loaded %d tracking records from '%s'.", len(state), self._blob_name)
        return state

    def invalidate_cache(self) -> None:
        """Drop the cached state; the next get() re-reads the persisted object."""
        self._cache = None

    ##########################################
    ############### WRITING ##################
    ##########################################

    async def save(self, state: Mapping[str, TrackingRecord | dict]) -> None:
        """Validate and persist a complete tracking state.

        Args:
            state: Mapping of document id to TrackingRecord (or its camelCase dict form).

        Raises:
            ValidationError: If the state is malformed; nothing is written.
            StoreWriteConflict: If another save is in progress; nothing is written.
            StorageError: If the upload fails; the cache is left untouched.
        """
        parsed = self._parse_state(state)
        if self._write_in_progress:
            self.logging.warning("Rejected tracking save: another write is in progress.")
            raise StoreWriteConflict()

        self._write_in_progress = True
        try:
            payload = {doc_id: record.to_json_dict() for doc_id, record in parsed.items()}
            data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
            await self._storage_client.do_upload(self._blob_name, data, content_type="application/json")
            self._cache = parsed
            self.logging.debug("Saved %d tracking records to '%s'.", len(parsed), self._blob_name)
        finally:
            self._write_in_progress = False

    async def update(self, mutator: Callable[[TrackingState], object]) -> TrackingState:
        """Apply a read-modify-write cycle under the commit lock.

        The mutator receives a fresh copy of the state and edits it in place;
        its return value is ignored.

        Returns:
            TrackingState: The state as persisted.
        """
        async with self._commit_lock:
            state = await self.get()
            mutator(state)
            await self.save(state)
            return self._copy_state(self._cache or {})

    ##########################################
    ################ LOCKS ###################
    ##########################################

    @asynccontextmanager
    async def document_lock(self, document_id: str) -> AsyncIterator[None]:
        """Serialise work on one document across concurrent requests.

        A lock is dropped from the registry once no holder or waiter is left.
        """
        lock = self._document_locks.setdefault(document_id, asyncio.Lock())
        self._document_lock_users[document_id] = self._document_lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._document_lock_users[document_id] -= 1
            if not self._document_lock_users[document_id]:
                del self._document_lock_users[document_id]
                del self._document_locks[document_id]
