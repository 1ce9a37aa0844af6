from shared.clients.embed.RemoteEmbedClientInterface import RemoteEmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientAzure(RemoteEmbedClientInterface):
    """Azure OpenAI deployment.

    EMBED_AZURE_ENDPOINT is the full deployment URL including the api-version, e.g.
    https://<resource>.openai.azure.com/openai/deployments/<deployment>/embeddings?api-version=2024-02-01
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._endpoint = self.get_config_val("ENDPOINT", default=None, val_type="string")
        self._model = self.get_config_val("MODEL", default="text-embedding-3-large", val_type="string")
        self._dimensions = int(self.get_config_val("DIMENSIONS", default=1536, val_type="number"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Azure"

    def get_model_name(self) -> str:
        return self._model

    def get_dimension(self) -> int:
        return self._dimensions

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="ENDPOINT", val_type="string", default=None),
            EnvConfig(env_key="MODEL", val_type="string", default="text-embedding-3-large"),
            EnvConfig(env_key="DIMENSIONS", val_type="number", default=1536),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._endpoint

    def _get_endpoint_healthcheck(self) -> str:
        # deployments expose no cheap read endpoint
        return ""

    def get_endpoint_embedding(self) -> str:
        # the deployment URL already points at the embeddings operation
        return ""

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"input": texts, "dimensions": self._dimensions}
