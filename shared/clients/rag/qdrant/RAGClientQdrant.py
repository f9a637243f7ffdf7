import uuid
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScoredPoint
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default=None)
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ POINT IDS ##################
    def sanitize_point_id(self, parts: list[str], sequence_index: int) -> str:
        # Qdrant accepts unsigned ints or UUIDs only
        return str(uuid.uuid5(uuid.NAMESPACE_OID, ":".join([*parts, str(sequence_index)])))

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_scroll(self) -> str:
        return f"/collections/{self._collection_name}/points/scroll"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_set_payload(self) -> str:
        return f"/collections/{self._collection_name}/points/payload?wait=true"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_count(self) -> str:
        return f"/collections/{self._collection_name}/points/count"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def build_filter(self, vector_filter: VectorFilter) -> dict:
        must: list[dict] = []
        if vector_filter.document_ids is not None:
            must.append({"key": "document_id", "match": {"any": vector_filter.document_ids}})
        if vector_filter.is_active is not None:
            must.append({"key": "is_active", "match": {"value": vector_filter.is_active}})
        return {"must": must}

    def get_upsert_payload(self, points: list[dict[str, Any]]) -> dict:
        return {
            "points": [
                {"id": point["id"], "vector": point["vector"], "payload": point["payload"]}
                for point in points
            ]
        }

    def get_query_payload(self, vector: list[float], vector_filter: VectorFilter, top_k: int) -> dict:
        return {
            "vector": vector,
            "filter": self.build_filter(vector_filter),
            "limit": top_k,
            "with_payload": True,
        }

    def get_scroll_payload(self, vector_filter: VectorFilter, limit: int, offset: str | int | None = None) -> dict:
        payload = {
            "filter": self.build_filter(vector_filter),
            "limit": limit,
            "with_payload": True,
            "with_vector": False,
        }
        if offset is not None:
            payload["offset"] = offset
        return payload

    def get_set_active_payload(self, vector_filter: VectorFilter, active: bool) -> dict:
        return {"payload": {"is_active": active}, "filter": self.build_filter(vector_filter)}

    def get_count_payload(self, vector_filter: VectorFilter) -> dict:
        return {"filter": self.build_filter(vector_filter), "exact": True}

    def get_delete_payload(self, vector_filter: VectorFilter) -> dict:
        return {"filter": self.build_filter(vector_filter)}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_hits(self, raw_response: dict) -> list[ScoredPoint]:
        return [
            ScoredPoint(id=str(hit.get("id")), score=hit.get("score", 0.0), payload=hit.get("payload") or {})
            for hit in raw_response.get("result", [])
        ]

    def extract_scroll_content(self, raw_response: dict) -> list[dict]:
        points = raw_response.get("result", {}).get("points", [])
        return [{"id": str(point.get("id")), "payload": point.get("payload") or {}} for point in points]

    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        return raw_response.get("result", {}).get("next_page_offset")

    def extract_count(self, raw_response: dict) -> int:
        return int(raw_response.get("result", {}).get("count", 0))
