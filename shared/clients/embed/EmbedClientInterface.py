from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.models.errors import EmbeddingError, TrainingBridgeError

from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and batching config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default="text-embedding-3-small")
        self.embed_batch_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=64))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "embed"

    def _get_error_class(self) -> type[TrainingBridgeError]:
        return EmbeddingError

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/embeddings")
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
        """Extract embedding vectors from an OpenAI-compatible embedding response.

        The response format is {"data": [{"embedding": [...], "index": 0}, ...]};
        entries are sorted by index so vectors line up with the input texts.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            EmbeddingError: If the response does not contain valid embeddings.
        """
        data = response_data.get("data")
        if not isinstance(data, list) or not data:
            raise EmbeddingError(
                f"Embedding response does not contain data. Response keys: {list(response_data.keys())}"
            )
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        vectors = [item.get("embedding") for item in ordered]
        if any(not vector for vector in vectors):
            raise EmbeddingError("Embedding response contains an empty vector.")
        return vectors

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one or more texts, batching requests to the backend.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs,
                all of the same length.

        Raises:
            EmbeddingError: If a request fails, times out (retryable), or the backend
                returns a wrong number of vectors or vectors of differing length.
        """
        texts = [texts] if isinstance(texts, str) else texts
        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self.embed_batch_size):
            batch = texts[batch_start: batch_start + self.embed_batch_size]
            response = await self.do_request(
                method="POST",
                endpoint=self.get_endpoint_embedding(),
                json=self.get_embed_payload(batch),
                raise_on_error=True,
            )
            batch_vectors = self.extract_embeddings_from_response(response.json())
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding backend returned {len(batch_vectors)} vectors for {len(batch)} texts."
                )
            vectors.extend(batch_vectors)

        if len({len(vector) for vector in vectors}) > 1:
            raise EmbeddingError("Embedding backend returned vectors of differing length.")
        self.logging.debug("Embedded %d text(s) with %s.", len(vectors), self.embed_model)
        return vectors
