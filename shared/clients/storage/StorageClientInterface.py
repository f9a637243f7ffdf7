from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.models.errors import StorageError, TrainingBridgeError, is_retryable_status

from shared.helper.HelperConfig import HelperConfig


class StorageClientInterface(ClientInterface):
    """Durable key-value blob persistence used by the tracking store."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "storage"

    def _get_error_class(self) -> type[TrainingBridgeError]:
        return StorageError

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_object(self, name: str) -> str:
        """
        Returns the endpoint path of a stored object.

        Args:
            name (str): The object name, e.g. "documentTracking.json".
        """
        pass

    ################ HEADERS ##################
    @abstractmethod
    def get_upload_headers(self, content_type: str) -> dict:
        """
        Returns the headers required to overwrite an object.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_exists(self, name: str) -> bool:
        """Check whether an object exists.

        Args:
            name (str): The object name.

        Returns:
            bool: True if the object exists, False on 404.
        """
        resp = await self.do_request(method="HEAD", endpoint=self._get_endpoint_object(name))
        if resp.status_code == 404:
            return False
        if resp.status_code >= 300:
            raise StorageError(f"Existence check of '{name}' failed with status {resp.status_code}")
        return True

    async def do_download(self, name: str) -> bytes | None:
        """Download an object.

        Args:
            name (str): The object name.

        Returns:
            bytes | None: The object content, None if it does not exist.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_object(name))
        if resp.status_code == 404:
            return None
        if resp.status_code >= 300:
            raise StorageError(
                f"Download of '{name}' failed with status {resp.status_code}",
                retryable=is_retryable_status(resp.status_code),
            )
        return resp.content

    async def do_upload(self, name: str, data: bytes, content_type: str = "application/json") -> None:
        """Create or overwrite an object.

        Args:
            name (str): The object name.
            data (bytes): The full new content.
            content_type (str): MIME type stored with the object.
        """
        await self.do_request(
            method="PUT",
            content=data,
            endpoint=self._get_endpoint_object(name),
            additional_headers=self.get_upload_headers(content_type),
            raise_on_error=True,
        )
        self.logging.debug("Uploaded '%s' (%d bytes) to %s.", name, len(data), self.get_engine_name())
