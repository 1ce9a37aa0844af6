from shared.clients.embed.EmbedClientInterface import EmbedClientInterface, InitProgressCallback, ProgressCallback
from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.exceptions import BackendUnavailable, InvalidInput
from shared.helper.HelperConfig import HelperConfig

SETTING_BACKEND = "embed_backend"
SETTING_DIMENSION = "embed_dimension"


class EmbedClientManager:
    """
    Manager class owning the active embedding backend.

    Exactly one engine is active at a time. The manager is also the embedding
    provider used by the retrieval service: embed calls are delegated to the
    active engine, so a backend switch is picked up without rewiring.

    The active backend name and its vector dimension are persisted in the
    vector store settings. Whenever the dimension changes the store is
    cleared, because vectors of different spaces cannot be compared.
    """

    ENGINE_PRIORITY = ("openai", "azure", "local")

    def __init__(self, helper_config: HelperConfig, vector_store: VectorStoreInterface):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._vector_store = vector_store
        self.client: EmbedClientInterface | None = None

    ##########################################
    ############# ENGINE CHOICE ##############
    ##########################################

    def _get_engine_from_env(self) -> str | None:
        """
        Reads the explicitly configured embedding engine from ENV configuration.

        Returns:
            str | None: The lowercased engine name, or None for auto-detection.
        """
        engine = self.helper_config.get_optional_string_val("EMBED_ENGINE")
        return engine.lower() if engine else None

    def detect_engine(self) -> str:
        """
        Picks the engine from the available credentials.

        Priority: remote OpenAI key, then Azure key plus endpoint, then the local model.

        Returns:
            str: The detected engine name.
        """
        if self.helper_config.get_optional_string_val("EMBED_OPENAI_API_KEY"):
            return "openai"
        if self.helper_config.get_optional_string_val("EMBED_AZURE_API_KEY") and self.helper_config.get_optional_string_val("EMBED_AZURE_ENDPOINT"):
            return "azure"
        return "local"

    async def _resolve_boot_client(self) -> EmbedClientInterface:
        """
        Returns the client to start with: explicit ENV choice, then the persisted
        backend of the previous run, then auto-detection.

        A persisted backend that is no longer configured or cannot run here is
        skipped in favour of auto-detection.
        """
        engine = self._get_engine_from_env()
        if engine:
            return self._instantiate_client(engine)
        stored = await self._vector_store.get_setting(SETTING_BACKEND)
        if stored and stored in self.ENGINE_PRIORITY:
            try:
                client = self._instantiate_client(stored)
            except BackendUnavailable as e:
                self.logging.warning("Stored embedding backend '%s' unusable, falling back to auto-detection: %s", stored, e)
            else:
                if client.is_available():
                    return client
                self.logging.warning("Stored embedding backend '%s' cannot run here, falling back to auto-detection.", stored)
        return self._instantiate_client(self.detect_engine())

    def _instantiate_client(self, engine: str) -> EmbedClientInterface:
        """
        Instantiates the embedding client of the given engine.

        Returns:
            EmbedClientInterface: The new, not yet booted client.

        Raises:
            InvalidInput: If the engine is unknown.
            BackendUnavailable: If the engine is not configured.
        """
        engine = engine.strip().lower().capitalize()
        className = f"EmbedClient{engine}"
        try:
            module = __import__(
                f"shared.clients.embed.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise InvalidInput(f"Unsupported Embed engine specified: '{engine}'. Error: {e}")
        try:
            client = client_class(helper_config=self.helper_config)
        except ValueError as e:
            raise BackendUnavailable(f"Embed engine '{engine.lower()}' is not configured: {e}") from e
        self.logging.debug("Instantiated Embed client for engine: %s", engine)
        return client

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> EmbedClientInterface:
        """
        Starts the backend chosen by _resolve_boot_client() and reconciles the
        persisted dimension with it.

        Returns:
            EmbedClientInterface: The active client.
        """
        if self.client is not None:
            return self.client
        client = await self._resolve_boot_client()
        await client.boot()
        self.client = client

        stored_dimension = await self._vector_store.get_setting(SETTING_DIMENSION)
        if stored_dimension is not None and int(stored_dimension) != client.get_dimension():
            self.logging.warning(
                "Stored vectors have %s dimensions but backend '%s' produces %d. Clearing knowledge base.",
                stored_dimension, client.get_engine_name(), client.get_dimension(),
            )
            await self._vector_store.clear_all()
        await self._persist_backend(client)
        self.logging.info(
            "Embedding backend '%s' active (model %s, %d dimensions).",
            client.get_engine_name(), client.get_model_name(), client.get_dimension(),
        )
        return client

    async def close(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None

    async def _persist_backend(self, client: EmbedClientInterface) -> None:
        await self._vector_store.set_setting(SETTING_BACKEND, client.get_engine_name())
        await self._vector_store.set_setting(SETTING_DIMENSION, client.get_dimension())

    ##########################################
    ############### SWITCHING ################
    ##########################################

    async def switch_backend(self, engine: str) -> bool:
        """
        Makes the given engine the active backend.

        Switching to the already active engine is a no-op. If the new backend
        produces vectors of a different dimension, the vector store is cleared
        before this method returns.

        Args:
            engine (str): Engine name, e.g. "local".

        Returns:
            bool: True if the backend changed.

        Raises:
            InvalidInput: If the engine is unknown.
            BackendUnavailable: If the engine is not configured or cannot run here.
        """
        engine = engine.strip().lower()
        if self.client is not None and self.client.get_engine_name() == engine:
            self.logging.debug("Embedding backend '%s' already active.", engine)
            return False

        new_client = self._instantiate_client(engine)
        if not new_client.is_available():
            raise BackendUnavailable(f"Embed engine '{engine}' cannot run in this environment.")
        await new_client.boot()

        old_client = self.client
        if old_client is not None:
            old_dimension = old_client.get_dimension()
        else:
            stored = await self._vector_store.get_setting(SETTING_DIMENSION)
            old_dimension = int(stored) if stored is not None else None
        self.client = new_client
        if old_client is not None:
            await old_client.close()

        if old_dimension is not None and old_dimension != new_client.get_dimension():
            self.logging.warning(
                "Embedding dimension changed from %d to %d. Clearing knowledge base.",
                old_dimension, new_client.get_dimension(),
            )
            await self._vector_store.clear_all()
        await self._persist_backend(new_client)
        self.logging.info("Switched embedding backend to '%s'.", engine, color="cyan")
        return True

    async def refresh_backend(self) -> bool:
        """
        Re-runs auto-detection, e.g. after credentials changed, and switches if needed.

        Returns:
            bool: True if the backend changed.
        """
        return await self.switch_backend(self._get_engine_from_env() or self.detect_engine())

    ##########################################
    ############## PROVIDER API ##############
    ##########################################

    def get_client(self) -> EmbedClientInterface:
        """
        Returns the active Embed client.

        Raises:
            BackendUnavailable: If boot() was not called yet.
        """
        if self.client is None:
            raise BackendUnavailable("No embedding backend active. Call boot() first.")
        return self.client

    def is_available(self) -> bool:
        return self.client is not None and self.client.is_available()

    def get_backend_name(self) -> str:
        return self.get_client().get_backend_name()

    def get_model_name(self) -> str:
        return self.get_client().get_model_name()

    def get_dimension(self) -> int:
        return self.get_client().get_dimension()

    async def initialize(self, on_progress: InitProgressCallback | None = None) -> None:
        await self.get_client().initialize(on_progress)

    async def embed(self, text: str) -> list[float]:
        return await self.get_client().embed(text)

    async def embed_batch(self, texts: list[str], on_progress: ProgressCallback | None = None) -> list[list[float]]:
        return await self.get_client().embed_batch(texts, on_progress=on_progress)
