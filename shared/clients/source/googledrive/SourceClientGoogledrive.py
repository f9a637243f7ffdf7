import asyncio
import base64
import json

import google.auth.exceptions
import google.auth.transport.requests
import httpx
from google.oauth2 import service_account

from shared.helper.HelperConfig import HelperConfig
from shared.clients.source.SourceClientInterface import SourceClientInterface
from shared.clients.source.googledrive.parsers import document_to_text, spreadsheet_to_text
from shared.models.config import EnvConfig
from shared.models.document import MIME_GOOGLE_DOC, MIME_GOOGLE_SHEET, Document, SourceKind
from shared.models.errors import ExtractionError, UnsupportedContentTypeError, ValidationError

GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/documents.readonly",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
]
DOCS_BASE_URL = "https://docs.googleapis.com"
SHEETS_BASE_URL = "https://sheets.googleapis.com"


class SourceClientGoogledrive(SourceClientInterface):
    """Google Docs and Google Sheets read through a service account.

    The Drive file id is the document id; Drive's modifiedTime drives retraining.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        raw_credentials = self.get_config_val("CREDENTIALS_BASE64", default=None, val_type="string")
        self._credentials = self._load_credentials(raw_credentials)
        self._token_lock = asyncio.Lock()

    @staticmethod
    def _load_credentials(raw_credentials: str) -> service_account.Credentials:
        try:
            info = json.loads(base64.b64decode(raw_credentials).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise ValueError(f"SOURCE_GOOGLEDRIVE_CREDENTIALS_BASE64 is not base64-encoded JSON: {e}")
        return service_account.Credentials.from_service_account_info(info, scopes=GOOGLE_SCOPES)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Googledrive"

    def get_source_kind(self) -> SourceKind:
        return SourceKind.DRIVE

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="CREDENTIALS_BASE64", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._credentials.token}"}

    async def _ensure_token(self) -> None:
        async with self._token_lock:
            if self._credentials.valid:
                return
            try:
                # google-auth refreshes synchronously through requests
                await asyncio.to_thread(self._credentials.refresh, google.auth.transport.requests.Request())
            except google.auth.exceptions.TransportError as e:
                raise ExtractionError(f"Google token refresh failed: {e}", retryable=True) from e
            except google.auth.exceptions.RefreshError as e:
                raise ExtractionError(f"Google service account rejected: {e}") from e

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "https://www.googleapis.com"

    def _get_endpoint_healthcheck(self) -> str:
        return "/drive/v3/about?fields=user"

    def _get_endpoint_file(self, file_id: str) -> str:
        return f"/drive/v3/files/{file_id}"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_request(self, *args, **kwargs) -> httpx.Response:
        await self._ensure_token()
        return await super().do_request(*args, **kwargs)

    def _to_document(self, file: dict) -> Document:
        return Document(
            document_id=file["id"],
            display_name=file.get("name") or file["id"],
            mime_type=file.get("mimeType") or "application/octet-stream",
            source_kind=SourceKind.DRIVE,
            last_modified_at=file.get("modifiedTime"),
        )

    async def do_fetch_document(self, document_id: str) -> Document:
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_file(document_id),
            params={"fields": "id,name,mimeType,modifiedTime", "supportsAllDrives": "true"},
        )
        self._raise_for_document_status(resp, document_id)
        return self._to_document(resp.json())

    async def do_extract_text(self, document: Document) -> str:
        if document.mime_type == MIME_GOOGLE_DOC:
            resp = await self.do_request(
                method="GET",
                endpoint=f"/v1/documents/{document.document_id}",
                base_url=DOCS_BASE_URL,
            )
            self._raise_for_document_status(resp, document.document_id)
            text = document_to_text(resp.json())
        elif document.mime_type == MIME_GOOGLE_SHEET:
            resp = await self.do_request(
                method="GET",
                endpoint=f"/v4/spreadsheets/{document.document_id}",
                params={"includeGridData": "true"},
                base_url=SHEETS_BASE_URL,
            )
            self._raise_for_document_status(resp, document.document_id)
            text = spreadsheet_to_text(resp.json())
        else:
            raise UnsupportedContentTypeError(
                f"MIME type '{document.mime_type}' of '{document.display_name}' cannot be extracted from Google Drive."
            )
        self.logging.debug("Extracted %d characters from Drive file '%s'.", len(text), document.document_id)
        return text

    async def do_list_documents(self, location: str | None = None) -> list[Document]:
        if not location:
            raise ValidationError("Listing Google Drive documents requires a folder id.")
        documents: list[Document] = []
        page_token: str | None = None
        while True:
            params = {
                "q": f"'{location}' in parents and trashed = false",
                "fields": "nextPageToken,files(id,name,mimeType,modifiedTime)",
                "includeItemsFromAllDrives": "true",
                "supportsAllDrives": "true",
            }
            if page_token:
                params["pageToken"] = page_token
            resp = await self.do_request(method="GET", endpoint="/drive/v3/files", params=params, raise_on_error=True)
            body = resp.json()
            documents.extend(self._to_document(file) for file in body.get("files", []))
            page_token = body.get("nextPageToken")
            if not page_token:
                break
        return documents
