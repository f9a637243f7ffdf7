import asyncio
import xml.etree.ElementTree as ET

import fitz  # PyMuPDF

from shared.helper.HelperConfig import HelperConfig
from shared.helper.azure_blob_helper import (
    AZURE_STORAGE_API_VERSION,
    blob_path,
    parse_last_modified,
    parse_sas_token,
)
from shared.clients.source.SourceClientInterface import SourceClientInterface
from shared.models.config import EnvConfig
from shared.models.document import MIME_PDF, Document, SourceKind
from shared.models.errors import ExtractionError


class SourceClientAzureblob(SourceClientInterface):
    """PDF documents stored as blobs. The blob name is both document id and display name."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_url = self.get_config_val("ACCOUNT_URL", default=None, val_type="string")
        self._sas_params = parse_sas_token(self.get_config_val("SAS_TOKEN", default=None, val_type="string"))
        self._container = self.get_config_val("CONTAINER", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Azureblob"

    def get_source_kind(self) -> SourceKind:
        return SourceKind.BLOB

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ACCOUNT_URL", val_type="string", default=None),
            EnvConfig(env_key="SAS_TOKEN", val_type="string", default=None),
            EnvConfig(env_key="CONTAINER", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-ms-version": AZURE_STORAGE_API_VERSION}

    async def _get_auth_params(self) -> dict:
        return dict(self._sas_params)

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._account_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._container}?restype=container"

    def _get_endpoint_blob(self, blob_name: str) -> str:
        return blob_path(self._container, blob_name)

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _resolve_mime_type(blob_name: str, content_type: str | None) -> str:
        # blobs uploaded without a content type come back as octet-stream
        if content_type and content_type != "application/octet-stream":
            return content_type.split(";")[0].strip()
        if blob_name.lower().endswith(".pdf"):
            return MIME_PDF
        return content_type or "application/octet-stream"

    @staticmethod
    def _pdf_to_text(data: bytes) -> str:
        with fitz.open(stream=data, filetype="pdf") as pdf:
            return "\n\n".join(page.get_text() for page in pdf)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_document(self, document_id: str) -> Document:
        resp = await self.do_request(method="HEAD", endpoint=self._get_endpoint_blob(document_id))
        self._raise_for_document_status(resp, document_id)
        return Document(
            document_id=document_id,
            display_name=document_id,
            mime_type=self._resolve_mime_type(document_id, resp.headers.get("Content-Type")),
            source_kind=SourceKind.BLOB,
            last_modified_at=parse_last_modified(resp.headers.get("Last-Modified")),
        )

    async def do_extract_text(self, document: Document) -> str:
        data, _ = await self.do_download_document(document.document_id)
        try:
            text = await asyncio.to_thread(self._pdf_to_text, data)
        except (RuntimeError, ValueError) as e:
            raise ExtractionError(f"PDF '{document.document_id}' could not be read: {e}") from e
        self.logging.debug("Extracted %d characters from blob '%s'.", len(text), document.document_id)
        return text.strip()

    async def do_list_documents(self, location: str | None = None) -> list[Document]:
        documents: list[Document] = []
        marker: str | None = None
        while True:
            params = {"restype": "container", "comp": "list"}
            if location:
                params["prefix"] = location
            if marker:
                params["marker"] = marker
            resp = await self.do_request(method="GET", endpoint=f"/{self._container}", params=params, raise_on_error=True)
            root = ET.fromstring(resp.content)
            for blob in root.iter("Blob"):
                name = blob.findtext("Name")
                if not name:
                    continue
                documents.append(
                    Document(
                        document_id=name,
                        display_name=name,
                        mime_type=self._resolve_mime_type(name, blob.findtext("Properties/Content-Type")),
                        source_kind=SourceKind.BLOB,
                        last_modified_at=parse_last_modified(blob.findtext("Properties/Last-Modified")),
                    )
                )
            marker = root.findtext("NextMarker") or None
            if marker is None:
                break
        return documents

    async def do_delete_document(self, document_id: str) -> None:
        """Delete a blob.

        Raises:
            NotFoundError: If the blob does not exist.
        """
        resp = await self.do_request(method="DELETE", endpoint=self._get_endpoint_blob(document_id))
        self._raise_for_document_status(resp, document_id)
        self.logging.info("Deleted blob '%s' from container '%s'.", document_id, self._container)

    async def do_upload_document(self, document_id: str, data: bytes, content_type: str = MIME_PDF) -> None:
        """Create or overwrite a blob.

        Args:
            document_id (str): The blob name.
            data (bytes): The full file content.
            content_type (str): MIME type stored with the blob.
        """
        await self.do_request(
            method="PUT",
            content=data,
            endpoint=self._get_endpoint_blob(document_id),
            additional_headers={"x-ms-blob-type": "BlockBlob", "Content-Type": content_type},
            raise_on_error=True,
        )
        self.logging.info("Uploaded blob '%s' (%d bytes) to container '%s'.", document_id, len(data), self._container)

    async def do_download_document(self, document_id: str) -> tuple[bytes, str]:
        """Download a blob.

        Returns:
            tuple[bytes, str]: The content and its MIME type.

        Raises:
            NotFoundError: If the blob does not exist.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_blob(document_id))
        self._raise_for_document_status(resp, document_id)
        return resp.content, self._resolve_mime_type(document_id, resp.headers.get("Content-Type"))
