import unicodedata
from typing import Any, AsyncIterator

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScoredPoint
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.models.config import EnvConfig
from shared.models.errors import VectorStoreError

PINECONE_API_VERSION = "2024-07"
MAX_QUERY_TOP_K = 10000
DELETE_BATCH_SIZE = 1000


class RAGClientPinecone(RAGClientInterface):
    """Pinecone data-plane client.

    Pinecone has no filtered scroll, so listing is emulated with a zero-vector
    query of at most MAX_QUERY_TOP_K matches. Metadata updates are issued per id,
    and bulk updates and deletes repeat the listing until it comes back short.
    Filtered counts are answered from the same listing because serverless
    indexes reject a filter on describe_index_stats. Metadata values must not
    be null, so unset payload fields are dropped.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._index_host = self.get_config_val("INDEX_HOST", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._namespace = self.get_config_val("NAMESPACE", default="", val_type="string")
        self._dimension = int(self.get_config_val("DIMENSION", default=1536, val_type="number"))
        self._listing_page_size = MAX_QUERY_TOP_K

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="INDEX_HOST", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE", val_type="string", default=""),
            EnvConfig(env_key="DIMENSION", val_type="number", default=1536),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Api-Key": self._api_key, "X-Pinecone-API-Version": PINECONE_API_VERSION}

    ################ POINT IDS ##################
    def sanitize_point_id(self, parts: list[str], sequence_index: int) -> str:
        return "_".join(self._to_ascii(part) for part in parts) + f"_part{sequence_index}"

    @staticmethod
    def _to_ascii(value: str) -> str:
        # fold accents, then drop whatever is still outside ASCII
        decomposed = unicodedata.normalize("NFKD", value)
        stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
        return stripped.encode("ascii", "ignore").decode("ascii")

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        host = self._index_host.rstrip("/")
        return host if host.startswith("http") else f"https://{host}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_scroll(self) -> str:
        return "/query"

    def _get_endpoint_points(self) -> str:
        return "/vectors/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_set_payload(self) -> str:
        return "/vectors/update"

    def _get_endpoint_delete_points(self) -> str:
        return "/vectors/delete"

    def _get_endpoint_count(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_check_collection_existence(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_create_collection(self) -> str:
        # indexes are provisioned through the Pinecone control plane
        return ""

    def _namespaced(self, body: dict) -> dict:
        if self._namespace:
            body["namespace"] = self._namespace
        return body

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def build_filter(self, vector_filter: VectorFilter) -> dict:
        clauses: list[dict] = []
        if vector_filter.document_ids is not None:
            clauses.append({"document_id": {"$in": vector_filter.document_ids}})
        if vector_filter.is_active is not None:
            clauses.append({"is_active": {"$eq": vector_filter.is_active}})
        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def get_upsert_payload(self, points: list[dict[str, Any]]) -> dict:
        vectors = [
            {
                "id": point["id"],
                "values": point["vector"],
                "metadata": {key: val for key, val in point["payload"].items() if val is not None},
            }
            for point in points
        ]
        return self._namespaced({"vectors": vectors})

    def get_query_payload(self, vector: list[float], vector_filter: VectorFilter, top_k: int) -> dict:
        body: dict = {
            "vector": vector,
            "topK": min(top_k, MAX_QUERY_TOP_K),
            "includeMetadata": True,
            "includeValues": False,
        }
        pinecone_filter = self.build_filter(vector_filter)
        if pinecone_filter:
            body["filter"] = pinecone_filter
        return self._namespaced(body)

    def get_scroll_payload(self, vector_filter: VectorFilter, limit: int, offset: str | int | None = None) -> dict:
        # offset is ignored, a zero-vector query has no cursor
        return self.get_query_payload([0.0] * self._dimension, vector_filter, self._listing_page_size)

    def get_set_active_payload(self, vector_filter: VectorFilter, active: bool) -> dict:
        """Base body of a per-id metadata update; do_set_active adds the id."""
        return self._namespaced({"setMetadata": {"is_active": active}})

    def get_count_payload(self, vector_filter: VectorFilter) -> dict:
        """Body of an unfiltered describe_index_stats call; filtered counts go through do_count."""
        return {}

    def get_delete_payload(self, vector_filter: VectorFilter) -> dict:
        """Base body of a delete-by-ids request; do_delete_points_by_filter adds the ids."""
        return self._namespaced({})

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_hits(self, raw_response: dict) -> list[ScoredPoint]:
        return [
            ScoredPoint(id=str(match.get("id")), score=match.get("score", 0.0) or 0.0, payload=match.get("metadata") or {})
            for match in raw_response.get("matches", [])
        ]

    def extract_scroll_content(self, raw_response: dict) -> list[dict]:
        return [{"id": hit.id, "payload": hit.payload} for hit in self.extract_query_hits(raw_response)]

    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        return None

    def extract_count(self, raw_response: dict) -> int:
        namespaces = raw_response.get("namespaces", {})
        if self._namespace:
            return int(namespaces.get(self._namespace, {}).get("vectorCount", 0))
        return int(namespaces.get("", {}).get("vectorCount", raw_response.get("totalVectorCount", 0)))

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _iter_id_pages(self, vector_filter: VectorFilter) -> AsyncIterator[list[str]]:
        """Yield ids matching the filter page by page.

        The caller must change every yielded vector so that it drops out of the
        filter; the listing is repeated until a page comes back short. Ids
        already yielded are skipped because query results may lag behind writes.
        """
        seen: set[str] = set()
        while True:
            page = await self.do_scroll(vector_filter, limit=self._listing_page_size)
            ids = [point["id"] for point in page.result if point["id"] not in seen]
            if ids:
                seen.update(ids)
                yield ids
            if not ids or len(page.result) < self._listing_page_size:
                return

    async def do_existence_check(self) -> bool:
        await self.do_request(method="POST", json={}, endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return True

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        raise VectorStoreError(f"Pinecone index at {self._index_host} does not exist; create it in the Pinecone console.")

    async def do_count(self, vector_filter: VectorFilter) -> int:
        """Count the vectors matching the filter.

        Unfiltered counts come from describe_index_stats. Filtered counts list
        the matches with a zero-vector query and are capped at MAX_QUERY_TOP_K.
        """
        if vector_filter.matches_nothing():
            return 0
        if not self.build_filter(vector_filter):
            resp = await self._post_json(endpoint=self._get_endpoint_count(), body=self.get_count_payload(vector_filter))
            return self.extract_count(resp.json())
        page = await self.do_scroll(vector_filter, limit=self._listing_page_size)
        return len(page.result)

    async def do_set_active(self, vector_filter: VectorFilter, active: bool) -> None:
        if vector_filter.matches_nothing():
            return
        # only points that actually change state need an update call
        pending = vector_filter.model_copy(update={"is_active": not active})
        updated = 0
        async for ids in self._iter_id_pages(pending):
            for point_id in ids:
                body = self.get_set_active_payload(vector_filter, active)
                body["id"] = point_id
                await self._post_json(endpoint=self._get_endpoint_set_payload(), body=body)
            updated += len(ids)
        self.logging.debug("Set is_active=%s on %d Pinecone vectors.", active, updated)

    async def do_delete_points_by_filter(self, vector_filter: VectorFilter) -> None:
        if vector_filter.matches_nothing():
            return
        deleted = 0
        async for ids in self._iter_id_pages(vector_filter):
            for batch_start in range(0, len(ids), DELETE_BATCH_SIZE):
                body = self.get_delete_payload(vector_filter)
                body["ids"] = ids[batch_start: batch_start + DELETE_BATCH_SIZE]
                await self._post_json(endpoint=self._get_endpoint_delete_points(), body=body)
            deleted += len(ids)
        self.logging.debug("Deleted %d Pinecone vectors.", deleted)
