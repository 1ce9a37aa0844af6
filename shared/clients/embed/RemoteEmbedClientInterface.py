from abc import abstractmethod

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions import UpstreamError
from shared.helper.HelperConfig import HelperConfig


class RemoteEmbedClientInterface(HttpClientInterface, EmbedClientInterface):
    """Embedding backend served by an OpenAI compatible HTTP API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/v1/embeddings")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an OpenAI style response.

        The response format is {"data": [{"embedding": [...], "index": 0}, ...]}.
        Items are not guaranteed to arrive in input order and are sorted by index.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            UpstreamError: If the response does not contain valid embeddings.
        """
        data = response_data.get("data") if isinstance(response_data, dict) else None
        if not isinstance(data, list) or not data:
            raise UpstreamError(f"{self.get_engine_name()} response does not contain embeddings")
        try:
            ordered = sorted(data, key=lambda item: item["index"])
            return [list(item["embedding"]) for item in ordered]
        except (KeyError, TypeError) as e:
            raise UpstreamError(f"{self.get_engine_name()} response has malformed embedding items: {e}") from e

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        await self.boot()
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=self.get_embed_payload(texts),
            raise_on_error=True,
        )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(f"{self.get_engine_name()} returned a non JSON body", status_code=response.status_code) from e
        return self.extract_embeddings_from_response(body)
