from shared.helper.HelperConfig import HelperConfig
from shared.helper.azure_blob_helper import AZURE_STORAGE_API_VERSION, blob_path, parse_sas_token
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.models.config import EnvConfig


class StorageClientAzureblob(StorageClientInterface):
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

    def _get_endpoint_object(self, name: str) -> str:
        return blob_path(self._container, name)

    ################ HEADERS ##################
    def get_upload_headers(self, content_type: str) -> dict:
        return {"x-ms-blob-type": "BlockBlob", "Content-Type": content_type}
