from shared.helper.HelperConfig import HelperConfig
from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.exceptions import BackendUnavailable


class WikiClientManager:
    """
    Manager class to handle the optional wiki client.

    The wiki source is optional: without WIKI_ENGINE the manager holds no
    client and get_client() returns None.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str | None:
        """
        Reads the wiki engine from ENV configuration.

        Returns:
            str | None: The capitalized engine name, or None if no wiki is configured.
        """
        engine = self.helper_config.get_optional_string_val("WIKI_ENGINE")
        return engine.lower().capitalize() if engine else None

    def _initialize_client(self) -> WikiClientInterface | None:
        """
        Initializes the wiki client of the configured engine.

        Returns:
            WikiClientInterface | None: The client, or None if no wiki is configured.

        Raises:
            ValueError: If the specified engine is not supported.
            BackendUnavailable: If the engine is selected but misconfigured.
        """
        engine = self._get_engine_from_env()
        if engine is None:
            self.logging.info("No wiki engine configured. Wiki sync is disabled.")
            return None
        className = f"WikiClient{engine}"
        try:
            module = __import__(
                f"shared.clients.wiki.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported wiki engine specified: '{engine}'. Error: {e}")
        try:
            client = client_class(helper_config=self.helper_config)
        except ValueError as e:
            raise BackendUnavailable(f"Wiki engine '{engine.lower()}' is not configured: {e}") from e
        self.logging.debug("Instantiated wiki client for engine: %s", engine)
        return client

    def is_configured(self) -> bool:
        return self.client is not None

    def get_client(self) -> WikiClientInterface | None:
        """
        Returns:
            WikiClientInterface | None: The wiki client, or None if not configured.
        """
        return self.client
