"""Query router: grounded context retrieval for a chatbot, plus health."""

import os

from fastapi import APIRouter, Request

from server.models.requests import SearchRequest
from server.models.responses import SearchResponse

query_router = APIRouter()


@query_router.post("/query", tags=["Query"])
async def handle_query(request: Request, body: SearchRequest) -> SearchResponse:
    """Return context text for a user question, restricted to the chatbot's documents.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (SearchRequest): The question and the chatbot it is asked to.

    Returns:
        SearchResponse: Rendered context, or a fixed message when nothing matched.
    """
    request.app.state.logging.info(
        "Query received for chatbot=%s query=%r", body.chatbot_id, body.query[:80]
    )
    context = await request.app.state.search_service.search_context(body.query, body.chatbot_id)
    return SearchResponse(chatbot_id=body.chatbot_id, query=body.query, context=context)


@query_router.get("/health", tags=["Health"])
async def health() -> dict:
    return {"status": "ok", "version": os.getenv("APP_VERSION", "unknown")}
