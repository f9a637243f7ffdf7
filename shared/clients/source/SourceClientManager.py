from shared.helper.HelperConfig import HelperConfig
from shared.clients.source.SourceClientInterface import SourceClientInterface
from shared.models.document import SourceKind
from shared.models.errors import UnsupportedContentTypeError


class SourceClientManager:
    """
    Manager class to handle all configured document source clients.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.clients: dict[SourceKind, SourceClientInterface] = self._initialize_clients()

    def _get_engines_from_env(self) -> list[str]:
        """
        Reads the source engines from ENV configuration.

        Returns:
            list[str]: The capitalised engine names, e.g. ["Azureblob", "Googledrive"].

        Raises:
            ValueError: If no source engine is specified in the configuration.
        """
        engines = self.helper_config.get_list_val("SOURCE_ENGINES", default=["azureblob"])
        if not engines:
            raise ValueError("SOURCE_ENGINES must name at least one source engine.")
        return [engine.strip().lower().capitalize() for engine in engines]

    def _initialize_clients(self) -> dict[SourceKind, SourceClientInterface]:
        clients: dict[SourceKind, SourceClientInterface] = {}
        for engine in self._get_engines_from_env():
            className = f"SourceClient{engine}"
            try:
                module = __import__(
                    f"shared.clients.source.{engine.lower()}.{className}",
                    fromlist=[className],
                )
                client_class = getattr(module, className)
            except (ImportError, AttributeError) as e:
                raise ValueError(f"Unsupported source engine specified: '{engine}'. Error: {e}")

            client = client_class(helper_config=self.helper_config)
            kind = client.get_source_kind()
            if kind in clients:
                raise ValueError(f"Two source engines serve source kind '{kind.value}'.")
            clients[kind] = client
            self.logging.debug("Instantiated source client for engine: %s", engine)
        return clients

    def get_client(self, kind: SourceKind) -> SourceClientInterface:
        """
        Returns the client serving a source kind.

        Raises:
            UnsupportedContentTypeError: If no configured engine serves the kind.
        """
        client = self.clients.get(kind)
        if client is None:
            raise UnsupportedContentTypeError(f"No source engine configured for source kind '{kind.value}'.")
        return client

    def get_clients(self) -> list[SourceClientInterface]:
        return list(self.clients.values())
