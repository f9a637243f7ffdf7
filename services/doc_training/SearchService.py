"""Query-time retrieval of grounded context for a bot.

Only active vectors of the documents the tracking store lists for the bot are
searched. Matches are grouped by heading and rendered with their source:

    🔹 *Travel policy*
    Employees book flights through ...
    (Source: handbook.pdf)
"""

from collections import OrderedDict

from services.doc_training.TrackingStore import TrackingStore
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScoredPoint
from shared.clients.rag.models.VectorFilter import VectorFilter
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ValidationError

NO_DOCUMENTS_MESSAGE = "⚠️ This bot has no trained documents."
NO_RESULTS_MESSAGE = "⚠️ No results found."
NO_RELEVANT_RESULTS_MESSAGE = "⚠️ No relevant results found."
DEFAULT_GROUP_TITLE = "Relevant information"
UNKNOWN_SOURCE = "unknown"


class SearchService:
    def __init__(
        self,
        helper_config: HelperConfig,
        tracking_store: TrackingStore,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._tracking_store = tracking_store
        self._embed_client = embed_client
        self._rag_client = rag_client

        self.top_k = int(helper_config.get_number_val("SEARCH_TOP_K", default=15))
        self.score_threshold = float(helper_config.get_number_val("SEARCH_SCORE_THRESHOLD", default=0.3))
        self.score_fallback = float(helper_config.get_number_val("SEARCH_SCORE_FALLBACK", default=0.4))
        self.min_matches = int(helper_config.get_number_val("SEARCH_MIN_MATCHES", default=5))

    def select_relevant(self, hits: list[ScoredPoint]) -> list[ScoredPoint]:
        """Keep hits at or above the threshold; with fewer than min_matches
        survivors the fallback threshold is applied to all hits instead."""
        relevant = [hit for hit in hits if hit.score >= self.score_threshold]
        if len(relevant) < self.min_matches:
            relevant = [hit for hit in hits if hit.score >= self.score_fallback]
        return relevant

    @staticmethod
    def render(hits: list[ScoredPoint]) -> str:
        groups: OrderedDict[str, list[str]] = OrderedDict()
        for hit in hits:
            title = hit.payload.get("heading") or DEFAULT_GROUP_TITLE
            content = hit.payload.get("chunk_text") or ""
            source = hit.payload.get("display_name") or hit.payload.get("document_id") or UNKNOWN_SOURCE
            groups.setdefault(title, []).append(f"{content}\n(Source: {source})")
        return "\n\n".join(f"🔹 *{title}*\n" + "\n\n".join(contents) for title, contents in groups.items())

    async def search_context(self, query: str, bot_id: str) -> str:
        """Build grounded context text for a user query.

        Args:
            query (str): The user's question.
            bot_id (str): The bot whose documents are searched.

        Returns:
            str: Rendered context, or a fixed message when nothing matches.
        """
        if not query or not query.strip():
            raise ValidationError("query must not be empty.")

        state = await self._tracking_store.get()
        document_ids = sorted(doc_id for doc_id, record in state.items() if bot_id in record.used_by_bots)
        if not document_ids:
            self.logging.info("Bot '%s' has no trained documents.", bot_id)
            return NO_DOCUMENTS_MESSAGE

        vector = (await self._embed_client.do_embed(texts=[query]))[0]
        hits = await self._rag_client.do_query(
            vector=vector,
            vector_filter=VectorFilter(document_ids=document_ids, is_active=True),
            top_k=self.top_k,
        )
        if not hits:
            return NO_RESULTS_MESSAGE

        relevant = self.select_relevant(hits)
        self.logging.debug(
            "Query for bot '%s': %d hits, %d relevant (best score %.3f).",
            bot_id, len(hits), len(relevant), max(hit.score for hit in hits),
        )
        if not relevant:
            return NO_RELEVANT_RESULTS_MESSAGE
        return self.render(relevant)
