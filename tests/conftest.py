"""Pytest configuration and shared fixtures for the test suite.

The core services are exercised against in-memory stand-ins of the vector
store, the embedding gateway, the tracking blob and the document sources.
"""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from services.doc_training.Fragmenter import Fragmenter
from services.doc_training.LifecycleService import LifecycleService
from services.doc_training.SearchService import SearchService
from services.doc_training.TrackingStore import TrackingStore
from services.doc_training.TrainingService import TrainingService
from shared.clients.rag.models.Scroll import ScoredPoint, ScrollResult
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.document import MIME_GOOGLE_DOC, MIME_PDF, SUPPORTED_MIME_TYPES, Document, SourceKind
from shared.models.errors import (
    ExtractionError,
    NotFoundError,
    StorageError,
    UnsupportedContentTypeError,
    VectorStoreError,
)

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

HANDBOOK_TEXT = """# Handbook

Welcome to the company. This handbook explains how we work.

## Travel

Employees book flights through the travel portal. Receipts are submitted within thirty days.

## Holidays

Every employee has twenty-five days of paid leave. Leave requests go to the team lead."""


def word_count(text: str) -> int:
    return len(text.split())


# Fakes
class FakeStorageClient:
    """Tracking persistence held in a dict."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.upload_count = 0
        self.fail_upload = False
        self.upload_gate: asyncio.Event | None = None

    async def do_download(self, name: str) -> bytes | None:
        return self.objects.get(name)

    async def do_exists(self, name: str) -> bool:
        return name in self.objects

    async def do_upload(self, name: str, data: bytes, content_type: str = "application/json") -> None:
        if self.upload_gate is not None:
            await self.upload_gate.wait()
        if self.fail_upload:
            raise StorageError("upload rejected", retryable=True)
        self.upload_count += 1
        self.objects[name] = data


class FakeRAGClient:
    """Vector store holding points in a dict keyed by point id."""

    def __init__(self) -> None:
        self.points: dict[str, dict] = {}
        self.scores: dict[str, float] = {}
        self.upsert_calls = 0
        self.fail_set_active = False
        self.fail_upsert = False
        self.last_query_filter: VectorFilter | None = None

    def make_point_id(self, document_id: str, sequence_index: int, bot_id: str | None = None) -> str:
        prefix = f"{bot_id}:" if bot_id else ""
        return f"{prefix}{document_id}:{sequence_index}"

    @staticmethod
    def _matches(payload: dict, vector_filter: VectorFilter) -> bool:
        if vector_filter.document_ids is not None and payload.get("document_id") not in vector_filter.document_ids:
            return False
        if vector_filter.is_active is not None and payload.get("is_active") != vector_filter.is_active:
            return False
        return True

    def matching(self, vector_filter: VectorFilter) -> list[dict]:
        return [point for point in self.points.values() if self._matches(point["payload"], vector_filter)]

    def active_count(self, document_id: str) -> int:
        return len(self.matching(VectorFilter.for_document(document_id, is_active=True)))

    async def do_upsert_points(self, points: list[dict]) -> None:
        if self.fail_upsert:
            raise VectorStoreError("upsert rejected")
        self.upsert_calls += 1
        for point in points:
            self.points[point["id"]] = {"id": point["id"], "vector": point["vector"], "payload": dict(point["payload"])}

    async def do_query(self, vector: list[float], vector_filter: VectorFilter, top_k: int) -> list[ScoredPoint]:
        self.last_query_filter = vector_filter
        hits = [
            ScoredPoint(id=point["id"], score=self.scores.get(point["id"], 0.5), payload=point["payload"])
            for point in self.matching(vector_filter)
        ]
        return sorted(hits, key=lambda hit: hit.score, reverse=True)[:top_k]

    async def do_scroll_all(self, vector_filter: VectorFilter) -> ScrollResult:
        return ScrollResult(
            result=[{"id": point["id"], "payload": dict(point["payload"])} for point in self.matching(vector_filter)]
        )

    async def do_count(self, vector_filter: VectorFilter) -> int:
        return len(self.matching(vector_filter))

    async def do_set_active(self, vector_filter: VectorFilter, active: bool) -> None:
        if self.fail_set_active:
            raise VectorStoreError("payload update rejected", retryable=True)
        for point in self.matching(vector_filter):
            point["payload"]["is_active"] = active

    async def do_delete_points_by_filter(self, vector_filter: VectorFilter) -> None:
        for point in self.matching(vector_filter):
            del self.points[point["id"]]


class FakeEmbedClient:
    """Returns a two-dimensional vector per text and records every call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    @property
    def embedded_texts(self) -> int:
        return sum(len(texts) for texts in self.calls)

    async def do_embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [[float(len(text)), 1.0] for text in texts]


class FakeSourceClient:
    """Serves documents registered with add()."""

    def __init__(self, kind: SourceKind) -> None:
        self.kind = kind
        self.documents: dict[str, Document] = {}
        self.texts: dict[str, str] = {}
        self.extract_calls = 0
        self.deleted: list[str] = []
        self.uploads: dict[str, bytes] = {}

    def get_source_kind(self) -> SourceKind:
        return self.kind

    def supports(self, mime_type: str) -> bool:
        return mime_type in SUPPORTED_MIME_TYPES[self.kind]

    def add(self, document: Document, text: str) -> Document:
        self.documents[document.document_id] = document
        self.texts[document.document_id] = text
        return document

    async def do_fetch_document(self, document_id: str) -> Document:
        if document_id not in self.documents:
            raise NotFoundError(f"Document '{document_id}' not found.")
        return self.documents[document_id]

    async def do_extract_text(self, document: Document) -> str:
        self.extract_calls += 1
        if document.document_id not in self.texts:
            raise ExtractionError(f"Document '{document.document_id}' is not readable.")
        return self.texts[document.document_id]

    async def do_list_documents(self, location: str | None = None) -> list[Document]:
        return list(self.documents.values())

    async def do_delete_document(self, document_id: str) -> None:
        if document_id not in self.documents:
            raise NotFoundError(f"Document '{document_id}' not found.")
        del self.documents[document_id]
        self.deleted.append(document_id)

    async def do_upload_document(self, document_id: str, data: bytes, content_type: str = MIME_PDF) -> None:
        self.uploads[document_id] = data
        self.add(
            Document(document_id=document_id, display_name=document_id, mime_type=content_type, source_kind=self.kind),
            data.decode("utf-8", errors="ignore"),
        )

    async def do_download_document(self, document_id: str) -> tuple[bytes, str]:
        if document_id not in self.documents:
            raise NotFoundError(f"Document '{document_id}' not found.")
        data = self.uploads.get(document_id, self.texts[document_id].encode("utf-8"))
        return data, self.documents[document_id].mime_type


class FakeSourceManager:
    def __init__(self, clients: list[FakeSourceClient]) -> None:
        self.clients = {client.kind: client for client in clients}

    def get_client(self, kind: SourceKind) -> FakeSourceClient:
        if kind not in self.clients:
            raise UnsupportedContentTypeError(f"No source engine configured for source kind '{kind.value}'.")
        return self.clients[kind]

    def get_clients(self) -> list[FakeSourceClient]:
        return list(self.clients.values())


# Config fixtures
@pytest.fixture
def logger() -> ColorLogger:
    return ColorLogger(logging.getLogger("training_bridge.tests"))


@pytest.fixture
def helper_config(logger, monkeypatch) -> HelperConfig:
    """HelperConfig over a controlled environment.

    Returns:
        HelperConfig reading the monkeypatched environment
    """
    for key in ("FRAGMENT_MAX_TOKENS", "SEARCH_TOP_K", "SEARCH_SCORE_THRESHOLD", "SEARCH_SCORE_FALLBACK",
                "SEARCH_MIN_MATCHES", "TRACKING_BLOB_NAME"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SWEEP_GRACE_SECONDS", "900")
    return HelperConfig(logger=logger)


# Fake client fixtures
@pytest.fixture
def storage_client() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def rag_client() -> FakeRAGClient:
    return FakeRAGClient()


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def blob_source() -> FakeSourceClient:
    return FakeSourceClient(SourceKind.BLOB)


@pytest.fixture
def drive_source() -> FakeSourceClient:
    return FakeSourceClient(SourceKind.DRIVE)


@pytest.fixture
def source_manager(blob_source, drive_source) -> FakeSourceManager:
    return FakeSourceManager([blob_source, drive_source])


# Service fixtures
@pytest.fixture
def tracking_store(helper_config, storage_client) -> TrackingStore:
    return TrackingStore(helper_config=helper_config, storage_client=storage_client)


@pytest.fixture
def fragmenter(helper_config) -> Fragmenter:
    return Fragmenter(helper_config=helper_config, token_counter=word_count)


@pytest.fixture
def training_service(helper_config, tracking_store, fragmenter, embed_client, rag_client, source_manager) -> TrainingService:
    return TrainingService(
        helper_config=helper_config,
        tracking_store=tracking_store,
        fragmenter=fragmenter,
        embed_client=embed_client,
        rag_client=rag_client,
        source_manager=source_manager,
    )


@pytest.fixture
def lifecycle_service(helper_config, tracking_store, rag_client) -> LifecycleService:
    return LifecycleService(helper_config=helper_config, tracking_store=tracking_store, rag_client=rag_client)


@pytest.fixture
def search_service(helper_config, tracking_store, embed_client, rag_client) -> SearchService:
    return SearchService(
        helper_config=helper_config,
        tracking_store=tracking_store,
        embed_client=embed_client,
        rag_client=rag_client,
    )


# Document fixtures
@pytest.fixture
def handbook(blob_source) -> Document:
    """A blob PDF registered with the blob source."""
    document = Document(
        document_id="handbook.pdf",
        display_name="handbook.pdf",
        mime_type=MIME_PDF,
        source_kind=SourceKind.BLOB,
        last_modified_at=T0,
    )
    return blob_source.add(document, HANDBOOK_TEXT)


@pytest.fixture
def drive_doc(drive_source) -> Document:
    """A Google Doc registered with the Drive source."""
    document = Document(
        document_id="1AbCdEf",
        display_name="Onboarding",
        mime_type=MIME_GOOGLE_DOC,
        source_kind=SourceKind.DRIVE,
        last_modified_at=T0,
    )
    return drive_source.add(document, "# Onboarding\n\nDay one starts at nine. Bring your ID.")
