from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientAzureopenai(EmbedClientInterface):
    """Azure OpenAI embeddings. The deployment selects the model, so the model
    name in the payload is informational only."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._endpoint = self.get_config_val("ENDPOINT", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._deployment = self.get_config_val("DEPLOYMENT", default=None, val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="2024-02-01", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Azureopenai"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ENDPOINT", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="DEPLOYMENT", val_type="string", default=None),
            EnvConfig(env_key="API_VERSION", val_type="string", default="2024-02-01"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"api-key": self._api_key}

    async def _get_auth_params(self) -> dict:
        return {"api-version": self._api_version}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._endpoint.rstrip('/')}/openai/deployments/{self._deployment}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/embeddings"

    def get_endpoint_embedding(self) -> str:
        return "/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"model": self.embed_model, "input": texts}

    async def do_healthcheck(self):
        # Azure deployments expose no cheap GET; a one-token embedding proves reachability
        await self.do_embed("ping")
