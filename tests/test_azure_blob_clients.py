"""Tests for the Azure Blob storage and source clients."""

import fitz
import httpx
import pytest

from shared.clients.source.azureblob.SourceClientAzureblob import SourceClientAzureblob
from shared.clients.storage.azureblob.StorageClientAzureblob import StorageClientAzureblob
from shared.helper.azure_blob_helper import blob_path, parse_last_modified, parse_sas_token
from shared.models.document import MIME_PDF, Document, SourceKind
from shared.models.errors import ExtractionError, NotFoundError, StorageError

LIST_PAGE_1 = b"""<?xml version="1.0" encoding="utf-8"?>
<EnumerationResults ContainerName="docs">
  <Blobs>
    <Blob><Name>handbook.pdf</Name><Properties>
      <Last-Modified>Wed, 01 May 2024 10:00:00 GMT</Last-Modified>
      <Content-Type>application/octet-stream</Content-Type>
    </Properties></Blob>
  </Blobs>
  <NextMarker>page2</NextMarker>
</EnumerationResults>"""

LIST_PAGE_2 = b"""<?xml version="1.0" encoding="utf-8"?>
<EnumerationResults ContainerName="docs">
  <Blobs>
    <Blob><Name>notes.txt</Name><Properties><Content-Type>text/plain</Content-Type></Properties></Blob>
  </Blobs>
  <NextMarker />
</EnumerationResults>"""


def _pdf_bytes(text: str) -> bytes:
    with fitz.open() as pdf:
        page = pdf.new_page()
        page.insert_text((72, 72), text)
        return pdf.tobytes()


@pytest.fixture
def azure_env(monkeypatch):
    for client_type in ("STORAGE", "SOURCE"):
        monkeypatch.setenv(f"{client_type}_AZUREBLOB_ACCOUNT_URL", "https://acct.blob.core.windows.net")
        monkeypatch.setenv(f"{client_type}_AZUREBLOB_SAS_TOKEN", "?sv=2021&sig=abc")
        monkeypatch.setenv(f"{client_type}_AZUREBLOB_CONTAINER", "docs")


@pytest.fixture
def storage(helper_config, azure_env) -> StorageClientAzureblob:
    return StorageClientAzureblob(helper_config=helper_config)


@pytest.fixture
def blob_client(helper_config, azure_env) -> SourceClientAzureblob:
    return SourceClientAzureblob(helper_config=helper_config)


def _mock(client, handler):
    requests: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client._client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return requests


class TestAzureBlobHelper:
    """Tests for the Azure Blob helper functions."""

    def test_parse_sas_token(self):
        """A leading question mark is ignored."""
        assert parse_sas_token("?sv=2021&sig=a%2Bb") == {"sv": "2021", "sig": "a+b"}

    def test_blob_path_quotes_names(self):
        """Blob names are URL-quoted, slashes included."""
        assert blob_path("docs", "my file/ä.pdf") == "/docs/my%20file%2F%C3%A4.pdf"

    def test_parse_last_modified(self):
        """RFC 1123 dates are parsed, garbage yields None."""
        assert parse_last_modified("Wed, 01 May 2024 10:00:00 GMT").hour == 10
        assert parse_last_modified("yesterday") is None
        assert parse_last_modified(None) is None


class TestStorageClient:
    """Tests for StorageClientAzureblob."""

    @pytest.mark.asyncio
    async def test_download_missing_object_returns_none(self, storage):
        """A 404 means the object does not exist yet."""
        _mock(storage, lambda request: httpx.Response(404))
        assert await storage.do_download("documentTracking.json") is None

    @pytest.mark.asyncio
    async def test_download_sends_sas_params(self, storage):
        """SAS token parameters and the API version travel with every request."""
        requests = _mock(storage, lambda request: httpx.Response(200, content=b"{}"))

        assert await storage.do_download("documentTracking.json") == b"{}"
        assert requests[0].url.params["sig"] == "abc"
        assert requests[0].url.path == "/docs/documentTracking.json"
        assert requests[0].headers["x-ms-version"] == "2021-08-06"

    @pytest.mark.asyncio
    async def test_download_server_error_is_retryable(self, storage):
        """Throttling surfaces as a retryable StorageError."""
        _mock(storage, lambda request: httpx.Response(429))
        with pytest.raises(StorageError) as exc_info:
            await storage.do_download("documentTracking.json")
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_upload_writes_block_blob(self, storage):
        """Uploads overwrite the object as a block blob."""
        requests = _mock(storage, lambda request: httpx.Response(201))

        await storage.do_upload("documentTracking.json", b'{"a": 1}')

        assert requests[0].method == "PUT"
        assert requests[0].headers["x-ms-blob-type"] == "BlockBlob"
        assert requests[0].content == b'{"a": 1}'

    @pytest.mark.asyncio
    async def test_upload_failure_raises(self, storage):
        """A rejected upload raises StorageError."""
        _mock(storage, lambda request: httpx.Response(403))
        with pytest.raises(StorageError):
            await storage.do_upload("documentTracking.json", b"{}")

    @pytest.mark.asyncio
    async def test_exists(self, storage):
        """HEAD 200 and 404 map to True and False."""
        _mock(storage, lambda request: httpx.Response(200 if request.url.path.endswith("a.json") else 404))
        assert await storage.do_exists("a.json") is True
        assert await storage.do_exists("b.json") is False


class TestBlobSourceClient:
    """Tests for SourceClientAzureblob."""

    @pytest.mark.asyncio
    async def test_fetch_document_reads_headers(self, blob_client):
        """Octet-stream PDFs resolve to application/pdf, Last-Modified becomes the modification time."""
        _mock(blob_client, lambda request: httpx.Response(
            200, headers={"Content-Type": "application/octet-stream", "Last-Modified": "Wed, 01 May 2024 10:00:00 GMT"}
        ))

        document = await blob_client.do_fetch_document("handbook.pdf")

        assert document.mime_type == MIME_PDF
        assert document.display_name == "handbook.pdf"
        assert document.last_modified_at.year == 2024

    @pytest.mark.asyncio
    async def test_fetch_missing_document(self, blob_client):
        """A missing blob raises NotFoundError."""
        _mock(blob_client, lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError):
            await blob_client.do_fetch_document("ghost.pdf")

    @pytest.mark.asyncio
    async def test_extract_text_from_pdf(self, blob_client):
        """Text of every page is extracted."""
        _mock(blob_client, lambda request: httpx.Response(200, content=_pdf_bytes("Travel policy")))

        text = await blob_client.do_extract_text(
            Document(document_id="handbook.pdf", display_name="handbook.pdf", mime_type=MIME_PDF, source_kind=SourceKind.BLOB)
        )
        assert "Travel policy" in text

    @pytest.mark.asyncio
    async def test_corrupt_pdf_raises_extraction_error(self, blob_client):
        """Bytes that are not a PDF raise ExtractionError."""
        _mock(blob_client, lambda request: httpx.Response(200, content=b"not a pdf"))
        with pytest.raises(ExtractionError):
            await blob_client.do_extract_text(
                Document(document_id="x.pdf", display_name="x.pdf", mime_type=MIME_PDF, source_kind=SourceKind.BLOB)
            )

    @pytest.mark.asyncio
    async def test_list_documents_follows_markers(self, blob_client):
        """Listing pages through NextMarker until it is empty."""
        requests = _mock(blob_client, lambda request: httpx.Response(
            200, content=LIST_PAGE_2 if request.url.params.get("marker") else LIST_PAGE_1
        ))

        documents = await blob_client.do_list_documents()

        assert [d.document_id for d in documents] == ["handbook.pdf", "notes.txt"]
        assert documents[0].mime_type == MIME_PDF
        assert documents[1].mime_type == "text/plain"
        assert requests[1].url.params["marker"] == "page2"

    @pytest.mark.asyncio
    async def test_upload_document_writes_pdf_blob(self, blob_client):
        """Uploads are block blobs stored with the PDF content type."""
        requests = _mock(blob_client, lambda request: httpx.Response(201))

        await blob_client.do_upload_document("handbook.pdf", b"%PDF-1.7")

        assert requests[0].method == "PUT"
        assert requests[0].url.path == "/docs/handbook.pdf"
        assert requests[0].headers["x-ms-blob-type"] == "BlockBlob"
        assert requests[0].headers["Content-Type"] == MIME_PDF
        assert requests[0].content == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_download_document_returns_content_and_type(self, blob_client):
        """Downloads return the bytes with the resolved MIME type."""
        _mock(blob_client, lambda request: httpx.Response(
            200, content=b"%PDF-1.7", headers={"Content-Type": "application/octet-stream"}
        ))

        data, mime_type = await blob_client.do_download_document("handbook.pdf")

        assert data == b"%PDF-1.7"
        assert mime_type == MIME_PDF

    @pytest.mark.asyncio
    async def test_download_missing_document(self, blob_client):
        """A missing blob raises NotFoundError."""
        _mock(blob_client, lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError):
            await blob_client.do_download_document("ghost.pdf")
