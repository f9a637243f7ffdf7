"""Tests for the SearchService."""

import pytest

from services.doc_training.SearchService import (
    NO_DOCUMENTS_MESSAGE,
    NO_RELEVANT_RESULTS_MESSAGE,
    NO_RESULTS_MESSAGE,
    SearchService,
)
from shared.clients.rag.models.Scroll import ScoredPoint
from shared.models.errors import ValidationError


def _hit(score: float, heading: str | None = "Travel", text: str = "Book early.", source: str = "handbook.pdf") -> ScoredPoint:
    return ScoredPoint(
        id=f"{source}:{score}",
        score=score,
        payload={"heading": heading, "chunk_text": text, "display_name": source, "document_id": source},
    )


class TestSelectRelevant:
    """Tests for the score threshold with fallback."""

    def test_enough_matches_use_primary_threshold(self, search_service):
        """With at least min_matches hits above 0.3 those hits are kept."""
        hits = [_hit(0.35)] * 5 + [_hit(0.2)]
        assert len(search_service.select_relevant(hits)) == 5

    def test_few_matches_fall_back_to_stricter_threshold(self, search_service):
        """Fewer than min_matches hits above 0.3 switches to the 0.4 threshold."""
        hits = [_hit(0.45), _hit(0.35), _hit(0.31)]
        assert [hit.score for hit in search_service.select_relevant(hits)] == [0.45]

    def test_threshold_is_inclusive(self, search_service):
        """A score equal to the threshold counts as relevant."""
        assert search_service.select_relevant([_hit(0.4)]) == [_hit(0.4)]


class TestRender:
    """Tests for context rendering."""

    def test_hits_are_grouped_by_heading(self):
        """Hits sharing a heading appear under one title with their sources."""
        text = SearchService.render([
            _hit(0.9, heading="Travel", text="Book early."),
            _hit(0.8, heading="Holidays", text="25 days."),
            _hit(0.7, heading="Travel", text="Keep receipts.", source="faq.pdf"),
        ])
        assert text == (
            "🔹 *Travel*\nBook early.\n(Source: handbook.pdf)\n\nKeep receipts.\n(Source: faq.pdf)"
            "\n\n🔹 *Holidays*\n25 days.\n(Source: handbook.pdf)"
        )

    def test_missing_heading_uses_default_title(self):
        """Fragments outside any heading are grouped under a generic title."""
        assert SearchService.render([_hit(0.9, heading=None)]).startswith("🔹 *Relevant information*")


class TestSearchContext:
    """Tests for search_context."""

    @pytest.mark.asyncio
    async def test_bot_without_documents(self, search_service, embed_client):
        """A bot without trained documents gets a fixed message and no embedding call."""
        assert await search_service.search_context("How do I travel?", "botZ") == NO_DOCUMENTS_MESSAGE
        assert embed_client.calls == []

    @pytest.mark.asyncio
    async def test_blank_query_is_rejected(self, search_service):
        """An empty query fails validation."""
        with pytest.raises(ValidationError):
            await search_service.search_context("  ", "botA")

    @pytest.mark.asyncio
    async def test_search_is_scoped_to_bot_documents(
        self, search_service, training_service, rag_client, handbook, drive_doc
    ):
        """Only active vectors of the bot's own documents are queried."""
        await training_service.train_document(handbook, "botA")
        await training_service.train_document(drive_doc, "botB")

        context = await search_service.search_context("travel portal", "botA")

        assert rag_client.last_query_filter.document_ids == ["handbook.pdf"]
        assert rag_client.last_query_filter.is_active is True
        assert "(Source: handbook.pdf)" in context
        assert "Onboarding" not in context

    @pytest.mark.asyncio
    async def test_low_scores_yield_no_relevant_results(self, search_service, training_service, rag_client, handbook):
        """Hits below both thresholds produce the no-relevant-results message."""
        await training_service.train_document(handbook, "botA")
        rag_client.scores = {point_id: 0.1 for point_id in rag_client.points}

        assert await search_service.search_context("anything", "botA") == NO_RELEVANT_RESULTS_MESSAGE

    @pytest.mark.asyncio
    async def test_no_active_vectors_yield_no_results(self, search_service, training_service, rag_client, handbook):
        """A tracked document whose vectors are all inactive returns the no-results message."""
        await training_service.train_document(handbook, "botA")
        for point in rag_client.points.values():
            point["payload"]["is_active"] = False

        assert await search_service.search_context("anything", "botA") == NO_RESULTS_MESSAGE
