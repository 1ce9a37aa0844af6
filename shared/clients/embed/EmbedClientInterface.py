from abc import abstractmethod
from typing import Callable

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import InvalidInput, UpstreamError
from shared.helper.HelperConfig import HelperConfig
from shared.models.embed import EmbedProgress
from shared.models.sync import ProgressEvent

ProgressCallback = Callable[[ProgressEvent], None]
InitProgressCallback = Callable[[EmbedProgress], None]


class EmbedClientInterface(ClientInterface):
    """Common contract of all embedding backends.

    Engines only implement how a single sub-batch is embedded. Input
    validation, sub-batching, order preservation, dimension checks and
    progress reporting live here.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.batch_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=100))

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_available(self) -> bool:
        """
        Returns whether the backend can be used in the current environment.
        """
        return True

    def _validate_texts(self, texts: list[str]) -> None:
        """
        Raises:
            InvalidInput: If any of the texts is not a string or is blank.
        """
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInput(f"Cannot embed empty text (input #{i}).")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def get_backend_name(self) -> str:
        """
        Returns the name of the active backend. E.g. "openai"
        """
        return self.get_engine_name()

    @abstractmethod
    def get_model_name(self) -> str:
        """
        Returns the name of the embedding model used by the backend.
        """
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """
        Returns the length of the vectors produced by the backend.
        """
        pass

    def _get_sub_batch_size(self) -> int:
        return max(1, self.batch_size)

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def initialize(self, on_progress: InitProgressCallback | None = None) -> None:
        """Prepare the backend for embedding. Remote backends are ready right away.

        Args:
            on_progress (InitProgressCallback | None): Receives loading progress, if any.
        """
        if on_progress:
            on_progress(EmbedProgress(status="ready", fraction_complete=1.0))

    ##########################################
    ############### EMBEDDING ################
    ##########################################

    @abstractmethod
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed one sub-batch of already validated texts.

        Args:
            texts (list[str]): At most _get_sub_batch_size() texts.

        Returns:
            list[list[float]]: One vector per text, in input order.
        """
        pass

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Args:
            text (str): The text to embed.

        Returns:
            list[float]: The embedding vector.

        Raises:
            InvalidInput: If the text is empty.
            UpstreamError: If the backend fails.
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str], on_progress: ProgressCallback | None = None) -> list[list[float]]:
        """Embed many texts, preserving input order.

        Args:
            texts (list[str]): The texts to embed.
            on_progress (ProgressCallback | None): Called after every sub-batch with stage "embedding".

        Returns:
            list[list[float]]: One vector per input text, in input order.

        Raises:
            InvalidInput: If any text is empty.
            UpstreamError: If the backend fails or returns a malformed result.
        """
        self._validate_texts(texts)
        if not texts:
            return []
        await self.initialize()

        total = len(texts)
        size = self._get_sub_batch_size()
        vectors: list[list[float]] = []
        for start in range(0, total, size):
            batch = texts[start:start + size]
            batch_vectors = await self._embed_texts(batch)
            if len(batch_vectors) != len(batch):
                raise UpstreamError(
                    f"{self.get_engine_name()} returned {len(batch_vectors)} embeddings for {len(batch)} inputs"
                )
            for vector in batch_vectors:
                self._check_dimension(vector)
            vectors.extend(batch_vectors)
            self.logging.debug("Embedded %d/%d texts with %s", len(vectors), total, self.get_engine_name())
            if on_progress:
                on_progress(ProgressEvent(stage="embedding", current=len(vectors), total=total))
        return vectors

    def _check_dimension(self, vector: list[float]) -> None:
        if len(vector) != self.get_dimension():
            raise UpstreamError(
                f"{self.get_engine_name()} returned a vector of length {len(vector)}, expected {self.get_dimension()}"
            )
