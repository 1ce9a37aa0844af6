from shared.clients.embed.RemoteEmbedClientInterface import RemoteEmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOpenai(RemoteEmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://api.openai.com", val_type="string")
        self._model = self.get_config_val("MODEL", default="text-embedding-3-large", val_type="string")
        self._dimensions = int(self.get_config_val("DIMENSIONS", default=1536, val_type="number"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openai"

    def get_model_name(self) -> str:
        return self._model

    def get_dimension(self) -> int:
        return self._dimensions

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com"),
            EnvConfig(env_key="MODEL", val_type="string", default="text-embedding-3-large"),
            EnvConfig(env_key="DIMENSIONS", val_type="number", default=1536),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def get_endpoint_embedding(self) -> str:
        return "/v1/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the OpenAI embedding request body.

        The text-embedding-3 models support shortening the output via "dimensions".

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: {"model": "...", "input": [...], "dimensions": n}
        """
        return {"model": self._model, "input": texts, "dimensions": self._dimensions}
