from abc import abstractmethod
from typing import Any
import json

import httpx
from shared.clients.rag.models.Scroll import ScoredPoint, ScrollResult
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.clients.ClientInterface import ClientInterface
from shared.models.errors import TrainingBridgeError, VectorStoreError

from shared.helper.HelperConfig import HelperConfig

UPSERT_BATCH_SIZE = 100  # max points per upsert call
SCROLL_PAGE_SIZE = 1000


class RAGClientInterface(ClientInterface):
    """Vector store adapter.

    Point ids are a pure function of (document_id, sequence_index[, bot_id]),
    sanitised once by the backend's sanitize_point_id(); callers never build
    ids themselves.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def _get_error_class(self) -> type[TrainingBridgeError]:
        return VectorStoreError

    ################ POINT IDS ##################
    def make_point_id(self, document_id: str, sequence_index: int, bot_id: str | None = None) -> str:
        """Build the deterministic point id of a fragment.

        Args:
            document_id (str): The document the fragment belongs to.
            sequence_index (int): Zero-based fragment position.
            bot_id (str | None): Only for bot-scoped storage; None for shared vectors.

        Returns:
            str: An id in the backend's allowed id format.
        """
        parts = [bot_id, document_id] if bot_id else [document_id]
        return self.sanitize_point_id(parts=parts, sequence_index=sequence_index)

    @abstractmethod
    def sanitize_point_id(self, parts: list[str], sequence_index: int) -> str:
        """
        Turns the id components into the backend's allowed id character set.

        Args:
            parts (list[str]): Identifier components, outermost scope first.
            sequence_index (int): Zero-based fragment position.

        Returns:
            str: The sanitised point id.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_scroll(self) -> str:
        """
        Returns the endpoint path for scroll (filtered listing) requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for points upsert requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity search requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_set_payload(self) -> str:
        """
        Returns the endpoint path for payload (metadata) updates.
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by filter.
        """
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        """
        Returns the endpoint path for counting points matching a filter.
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence check requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """
        Returns the endpoint path for create collection requests.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def build_filter(self, vector_filter: VectorFilter) -> dict:
        """
        Translates a VectorFilter into the backend's filter syntax.

        Args:
            vector_filter (VectorFilter): The backend-neutral filter.

        Returns:
            dict: The backend filter.
        """
        pass

    @abstractmethod
    def get_upsert_payload(self, points: list[dict[str, Any]]) -> dict:
        """
        Builds the upsert body from generic points {"id", "vector", "payload"}.
        """
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], vector_filter: VectorFilter, top_k: int) -> dict:
        """
        Builds the similarity search body.
        """
        pass

    @abstractmethod
    def get_scroll_payload(self, vector_filter: VectorFilter, limit: int, offset: str | int | None = None) -> dict:
        """
        Builds the body of one scroll page. Payloads are always included, vectors never.
        """
        pass

    @abstractmethod
    def get_set_active_payload(self, vector_filter: VectorFilter, active: bool) -> dict:
        """
        Builds the body that sets is_active on the points matching the filter.
        """
        pass

    @abstractmethod
    def get_count_payload(self, vector_filter: VectorFilter) -> dict:
        """
        Builds the body of a count request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, vector_filter: VectorFilter) -> dict:
        """
        Builds the body of a filter-based delete.
        """
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_query_hits(self, raw_response: dict) -> list[ScoredPoint]:
        """
        Extracts scored hits from a similarity search response, best first.
        """
        pass

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> list[dict]:
        """
        Extracts the points ({"id", "payload"}) from one scroll page.
        """
        pass

    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        """
        Extracts the pagination cursor for the next scroll page, None on the last page.
        """
        pass

    @abstractmethod
    def extract_count(self, raw_response: dict) -> int:
        """
        Extracts the number of matching points from a count response.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _post_json(self, endpoint: str, body: dict, method: str = "POST") -> httpx.Response:
        return await self.do_request(
            method=method,
            content=json.dumps(body),
            endpoint=endpoint,
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection in the rag backend.

        Args:
            vector_size (int): The size of the vectors in the collection.
            distance (str): The distance metric for the vectors.
        """
        await self._post_json(
            endpoint=self._get_endpoint_create_collection(),
            body={"vectors": {"size": vector_size, "distance": distance}},
            method="PUT",
        )

    async def do_upsert_points(self, points: list[dict[str, Any]]) -> None:
        """Upsert points, replacing points that share an id.

        Args:
            points (list[dict[str, Any]]): Generic points {"id", "vector", "payload"}.
        """
        for batch_start in range(0, len(points), UPSERT_BATCH_SIZE):
            batch = points[batch_start: batch_start + UPSERT_BATCH_SIZE]
            await self._post_json(endpoint=self._get_endpoint_points(), body=self.get_upsert_payload(batch), method="PUT")

    async def do_query(self, vector: list[float], vector_filter: VectorFilter, top_k: int) -> list[ScoredPoint]:
        """Similarity search restricted by a filter.

        Args:
            vector (list[float]): The query embedding.
            vector_filter (VectorFilter): Restriction applied before ranking.
            top_k (int): Maximum number of hits.

        Returns:
            list[ScoredPoint]: Hits ordered by descending score.
        """
        if vector_filter.matches_nothing():
            return []
        resp = await self._post_json(endpoint=self._get_endpoint_query(), body=self.get_query_payload(vector, vector_filter, top_k))
        return self.extract_query_hits(resp.json())

    async def do_scroll(self, vector_filter: VectorFilter, limit: int = SCROLL_PAGE_SIZE, offset: str | int | None = None) -> ScrollResult:
        """Scroll a single page of points matching the filter.

        To retrieve all matching points across an arbitrary number of pages use
        do_scroll_all() instead.

        Args:
            vector_filter (VectorFilter): The filter to apply.
            limit (int): The maximum number of points per page.
            offset (str | int | None): Cursor from the previous page, None to start.

        Returns:
            ScrollResult: The page, with next_page_offset set when more pages exist.
        """
        if vector_filter.matches_nothing():
            return ScrollResult(result=[])
        resp = await self._post_json(endpoint=self._get_endpoint_scroll(), body=self.get_scroll_payload(vector_filter, limit, offset))
        raw_response = resp.json()
        return ScrollResult(
            result=self.extract_scroll_content(raw_response),
            status=raw_response.get("status", "ok") if isinstance(raw_response.get("status"), str) else "ok",
            time=raw_response.get("time", 0) or 0,
            next_page_offset=self.extract_next_page_offset(raw_response),
        )

    async def do_scroll_all(self, vector_filter: VectorFilter) -> ScrollResult:
        """Scroll through ALL points matching the filter, paginating automatically.

        Args:
            vector_filter (VectorFilter): The filter to apply.

        Returns:
            ScrollResult: All matching points. next_page_offset is always None.
        """
        all_points: list[dict] = []
        offset: str | int | None = None
        page = 1
        while True:
            page_result = await self.do_scroll(vector_filter=vector_filter, limit=SCROLL_PAGE_SIZE, offset=offset)
            all_points.extend(page_result.result)
            self.logging.debug(
                "Fetched RAG points page %d from %s, total points so far: %d",
                page, self.get_engine_name(), len(all_points),
            )
            offset = page_result.next_page_offset
            if offset is None:
                break
            page += 1
        return ScrollResult(result=all_points)

    async def do_count(self, vector_filter: VectorFilter) -> int:
        """Count the points matching the filter.

        Args:
            vector_filter (VectorFilter): The filter to apply.

        Returns:
            int: Number of matching points.
        """
        if vector_filter.matches_nothing():
            return 0
        resp = await self._post_json(endpoint=self._get_endpoint_count(), body=self.get_count_payload(vector_filter))
        return self.extract_count(resp.json())

    async def do_set_active(self, vector_filter: VectorFilter, active: bool) -> None:
        """Soft-delete (active=False) or reactivate the points matching the filter.

        Args:
            vector_filter (VectorFilter): The filter to apply.
            active (bool): New value of the is_active payload field.
        """
        if vector_filter.matches_nothing():
            return
        await self._post_json(endpoint=self._get_endpoint_set_payload(), body=self.get_set_active_payload(vector_filter, active))

    async def do_delete_points_by_filter(self, vector_filter: VectorFilter) -> None:
        """Hard-delete all points matching the filter.

        Args:
            vector_filter (VectorFilter): The filter to apply.
        """
        if vector_filter.matches_nothing():
            return
        await self._post_json(endpoint=self._get_endpoint_delete_points(), body=self.get_delete_payload(vector_filter))
