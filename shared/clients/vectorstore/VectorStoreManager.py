from shared.helper.HelperConfig import HelperConfig
from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface


class VectorStoreManager:
    """
    Manager class to handle the vector store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the vector store engine from ENV configuration. Defaults to "sqlite".

        Returns:
            str: The capitalized engine name.
        """
        engine = self.helper_config.get_string_val("VECTORSTORE_ENGINE", default="sqlite")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> VectorStoreInterface:
        """
        Initializes the vector store client based on the engine specified in the configuration.

        Returns:
            VectorStoreInterface: An instance of the configured store.

        Raises:
            ValueError: If the specified engine is not supported.
        """
        engine = self._get_engine_from_env()
        className = f"VectorStore{engine}"
        try:
            module = __import__(
                f"shared.clients.vectorstore.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported vector store engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated vector store client for engine: %s", engine)
        return client

    def get_client(self) -> VectorStoreInterface:
        """
        Returns:
            VectorStoreInterface: The vector store instance.
        """
        return self.client
