"""Tests for the embedding clients and the client managers."""

import json

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.azureopenai.EmbedClientAzureopenai import EmbedClientAzureopenai
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.clients.source.SourceClientManager import SourceClientManager
from shared.models.document import SourceKind
from shared.models.errors import EmbeddingError, UnsupportedContentTypeError


def _embedding_response(request: httpx.Request) -> httpx.Response:
    texts = json.loads(request.content)["input"]
    # reversed to check that vectors are re-ordered by index
    data = [{"index": i, "embedding": [float(len(text)), 1.0]} for i, text in enumerate(texts)][::-1]
    return httpx.Response(200, json={"data": data})


@pytest.fixture
def openai_client(helper_config, monkeypatch) -> EmbedClientOpenai:
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("EMBED_BATCH_SIZE", "2")
    return EmbedClientOpenai(helper_config=helper_config)


class TestOpenaiEmbedClient:
    """Tests for EmbedClientOpenai."""

    @pytest.mark.asyncio
    async def test_embed_batches_and_orders(self, openai_client):
        """Texts are sent in batches and vectors come back in input order."""
        requests: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return _embedding_response(request)

        openai_client._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))

        vectors = await openai_client.do_embed(["a", "bb", "ccc"])

        assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
        assert len(requests) == 2
        assert requests[0].headers["Authorization"] == "Bearer sk-test"
        assert json.loads(requests[0].content)["model"] == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_single_text(self, openai_client):
        """A plain string is embedded as a one-element list."""
        openai_client._client = httpx.AsyncClient(transport=httpx.MockTransport(_embedding_response))
        assert await openai_client.do_embed("hello") == [[5.0, 1.0]]

    @pytest.mark.asyncio
    async def test_quota_error_is_retryable(self, openai_client):
        """A 429 raises a retryable EmbeddingError."""
        openai_client._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(429)))
        with pytest.raises(EmbeddingError) as exc_info:
            await openai_client.do_embed(["a"])
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_missing_data_raises(self, openai_client):
        """A response without vectors is an EmbeddingError."""
        openai_client._client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "nope"}))
        )
        with pytest.raises(EmbeddingError):
            await openai_client.do_embed(["a"])

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, openai_client):
        """A timed-out request raises a retryable EmbeddingError."""

        def _timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        openai_client._client = httpx.AsyncClient(transport=httpx.MockTransport(_timeout))
        with pytest.raises(EmbeddingError) as exc_info:
            await openai_client.do_embed(["a"])
        assert exc_info.value.retryable


class TestAzureOpenaiEmbedClient:
    """Tests for EmbedClientAzureopenai."""

    @pytest.mark.asyncio
    async def test_deployment_url_and_api_version(self, helper_config, monkeypatch):
        """Requests go to the deployment with the api-version parameter."""
        monkeypatch.setenv("EMBED_AZUREOPENAI_ENDPOINT", "https://acme.openai.azure.com/")
        monkeypatch.setenv("EMBED_AZUREOPENAI_API_KEY", "az-key")
        monkeypatch.setenv("EMBED_AZUREOPENAI_DEPLOYMENT", "embed-small")
        client = EmbedClientAzureopenai(helper_config=helper_config)
        requests: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return _embedding_response(request)

        client._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))

        await client.do_embed(["a"])

        assert requests[0].url.path == "/openai/deployments/embed-small/embeddings"
        assert requests[0].url.params["api-version"] == "2024-02-01"
        assert requests[0].headers["api-key"] == "az-key"


class TestClientManagers:
    """Tests for engine selection by configuration."""

    def test_rag_manager_loads_engine(self, helper_config, monkeypatch):
        """RAG_ENGINE selects the client class."""
        monkeypatch.setenv("RAG_ENGINE", "qdrant")
        monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://qdrant:6333")
        monkeypatch.setenv("RAG_QDRANT_COLLECTION", "docs")
        assert isinstance(RAGClientManager(helper_config=helper_config).get_client(), RAGClientQdrant)

    def test_unknown_engine_raises(self, helper_config, monkeypatch):
        """An engine without a client module is a configuration error."""
        monkeypatch.setenv("EMBED_ENGINE", "nonexistent")
        with pytest.raises(ValueError):
            EmbedClientManager(helper_config=helper_config)

    def test_source_manager_rejects_unconfigured_kind(self, helper_config, monkeypatch):
        """Asking for a source kind without an engine raises UnsupportedContentTypeError."""
        monkeypatch.setenv("SOURCE_ENGINES", "[azureblob]")
        monkeypatch.setenv("SOURCE_AZUREBLOB_ACCOUNT_URL", "https://acct.blob.core.windows.net")
        monkeypatch.setenv("SOURCE_AZUREBLOB_SAS_TOKEN", "sv=2021&sig=abc")
        monkeypatch.setenv("SOURCE_AZUREBLOB_CONTAINER", "docs")
        manager = SourceClientManager(helper_config=helper_config)

        assert manager.get_client(SourceKind.BLOB).get_source_kind() == SourceKind.BLOB
        with pytest.raises(UnsupportedContentTypeError):
            manager.get_client(SourceKind.DRIVE)
