from shared.helper.HelperConfig import HelperConfig
from shared.clients.storage.StorageClientInterface import StorageClientInterface

class StorageClientManager:
    """
    Manager class to handle the storage (tracking persistence) client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the storage engine from ENV configuration.

        Returns:
            str: The capitalised name of the storage engine, e.g. "Azureblob".

        Raises:
            ValueError: If no storage engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val("STORAGE_ENGINE", default="azureblob")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> StorageClientInterface:
        """
        Initializes the storage client based on the engine specified in the configuration.

        Returns:
            StorageClientInterface: An instance of the storage client that implements the StorageClientInterface.

        Raises:
            ValueError: If the engine is unsupported.
        """
        engine = self._get_engine_from_env()
        className = f"StorageClient{engine}"
        try:
            module = __import__(
                f"shared.clients.storage.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported storage engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated storage client for engine: %s", engine)
        return client

    def get_client(self) -> StorageClientInterface:
        """
        Returns the instantiated storage client.

        Returns:
            StorageClientInterface: The storage client instance.
        """
        return self.client
