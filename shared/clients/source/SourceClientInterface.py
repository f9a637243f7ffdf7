from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.models.document import SUPPORTED_MIME_TYPES, Document, SourceKind
from shared.models.errors import ExtractionError, NotFoundError, TrainingBridgeError, is_retryable_status

from shared.helper.HelperConfig import HelperConfig


class SourceClientInterface(ClientInterface):
    """Text extractor for one kind of document source (blob storage, Google Drive, ...)."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "source"

    def _get_error_class(self) -> type[TrainingBridgeError]:
        return ExtractionError

    @abstractmethod
    def get_source_kind(self) -> SourceKind:
        """
        Returns the source kind served by this client.
        """
        pass

    def supported_mime_types(self) -> tuple[str, ...]:
        return SUPPORTED_MIME_TYPES[self.get_source_kind()]

    def supports(self, mime_type: str) -> bool:
        return mime_type in self.supported_mime_types()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _raise_for_document_status(self, resp: httpx.Response, document_id: str) -> None:
        """Raise NotFoundError on 404 and ExtractionError on any other non-2xx status."""
        if resp.status_code == 404:
            raise NotFoundError(f"Document '{document_id}' not found in {self.get_engine_name()}.")
        if resp.status_code >= 300:
            self.logging.error(
                "Source %s returned status %d for document '%s': %s",
                self.get_engine_name(), resp.status_code, document_id, resp.text[:500],
            )
            raise ExtractionError(
                f"Source {self.get_engine_name()} returned status {resp.status_code} for document '{document_id}'",
                retryable=is_retryable_status(resp.status_code),
            )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_fetch_document(self, document_id: str) -> Document:
        """Resolve the current metadata of a document at its source.

        Args:
            document_id (str): Blob name or Drive file id.

        Returns:
            Document: Name, MIME type and modification time as the source reports them.

        Raises:
            NotFoundError: If the document does not exist.
        """
        pass

    @abstractmethod
    async def do_extract_text(self, document: Document) -> str:
        """Extract the plain text of a document.

        Args:
            document (Document): The document to extract.

        Returns:
            str: Extracted text, possibly empty.

        Raises:
            ExtractionError: If the source is inaccessible or the content unreadable.
        """
        pass

    @abstractmethod
    async def do_list_documents(self, location: str | None = None) -> list[Document]:
        """List the trainable documents of a location (container, folder).

        Args:
            location (str | None): Source-specific location; None for the default one.

        Returns:
            list[Document]: Documents found, unsupported types included.
        """
        pass
