"""Train management router: detach, removal, purge, status and inspection of trained documents."""

from fastapi import APIRouter, Query, Request

from server.models.responses import (
    BotDocument,
    BotDocumentsResponse,
    DeleteBotResponse,
    DetachResponse,
    FragmentItem,
    FragmentsResponse,
    PurgeResponse,
    RemoveResponse,
    StatusResponse,
    VectorCountResponse,
)
from shared.models.errors import NotFoundError, ValidationError
from shared.models.outcomes import DetachResult, RemoveResult, SweepReport

train_management_router = APIRouter()


@train_management_router.delete("/train/{chatbot_id}/document/{document_id}", tags=["Train management"])
async def detach_bot(request: Request, chatbot_id: str, document_id: str) -> DetachResponse:
    """Stop a chatbot from using a document. The last chatbot leaving removes the document."""
    result = await request.app.state.lifecycle_service.detach_bot(document_id, chatbot_id)
    if result == DetachResult.DOCUMENT_NOT_FOUND:
        raise NotFoundError(f"Document '{document_id}' is not tracked.")
    return DetachResponse(chatbot_id=chatbot_id, document_id=document_id, result=result)


@train_management_router.delete("/train/document/{document_id}", tags=["Train management"])
async def remove_document(request: Request, document_id: str) -> RemoveResponse:
    result = await request.app.state.lifecycle_service.remove_document_everywhere(document_id)
    if result == RemoveResult.NOT_FOUND:
        raise NotFoundError(f"Document '{document_id}' is not tracked.")
    return RemoveResponse(document_id=document_id, result=result)


@train_management_router.delete("/train/purge/all", tags=["Train management"])
async def purge_all(request: Request, confirm: bool = Query(default=False)) -> PurgeResponse:
    """Remove every trained document of every chatbot. Requires ?confirm=true."""
    if not confirm:
        raise ValidationError("Purging all trained documents requires ?confirm=true.")
    purged = await request.app.state.lifecycle_service.purge_all()
    return PurgeResponse(purged=purged)


@train_management_router.get("/train/{chatbot_id}/status/{document_id}", tags=["Train management"])
async def document_status(request: Request, chatbot_id: str, document_id: str) -> StatusResponse:
    status = await request.app.state.lifecycle_service.document_status(chatbot_id, document_id)
    return StatusResponse(chatbot_id=chatbot_id, document_id=document_id, status=status)


@train_management_router.get("/train/{chatbot_id}/documents", tags=["Train management"])
async def bot_documents(request: Request, chatbot_id: str) -> BotDocumentsResponse:
    records = await request.app.state.lifecycle_service.list_bot_documents(chatbot_id)
    documents = [
        BotDocument(
            document_id=record.document_id,
            filename=record.filename,
            mime_type=record.mime_type,
            trained_at=record.trained_at,
        )
        for record in records
    ]
    return BotDocumentsResponse(chatbot_id=chatbot_id, documents=documents, total=len(documents))


@train_management_router.get("/train/{chatbot_id}/fragments", tags=["Train management"])
async def bot_fragments(
    request: Request,
    chatbot_id: str,
    document_id: str = Query(alias="documentId", min_length=1),
) -> FragmentsResponse:
    """List the stored fragments of one of the chatbot's documents."""
    lifecycle_service = request.app.state.lifecycle_service
    record = await request.app.state.tracking_store.get_record(document_id)
    if record is None or chatbot_id not in record.used_by_bots:
        raise NotFoundError(f"Document '{document_id}' is not trained for chatbot '{chatbot_id}'.")
    payloads = await lifecycle_service.list_fragments(document_id)
    fragments = [
        FragmentItem(
            sequence_index=payload.get("sequence_index", 0),
            heading=payload.get("heading"),
            chunk_text=payload.get("chunk_text", ""),
        )
        for payload in payloads
    ]
    return FragmentsResponse(document_id=document_id, fragments=fragments, total=len(fragments))


@train_management_router.get("/vectors/document/{document_id}/count", tags=["Train management"])
async def vector_count(request: Request, document_id: str) -> VectorCountResponse:
    count, display_name = await request.app.state.lifecycle_service.vector_count(document_id)
    return VectorCountResponse(document_id=document_id, display_name=display_name, count=count)


@train_management_router.delete("/train/bot/{chatbot_id}", tags=["Train management"])
async def delete_bot(request: Request, chatbot_id: str) -> DeleteBotResponse:
    """Detach a deleted chatbot from all of its documents."""
    results = await request.app.state.lifecycle_service.detach_bot_everywhere(chatbot_id)
    return DeleteBotResponse(chatbot_id=chatbot_id, documents=results)


@train_management_router.post("/vectors/sweep", tags=["Train management"])
async def sweep(request: Request) -> SweepReport:
    """Deactivate untracked vectors and hard-delete all inactive ones."""
    return await request.app.state.lifecycle_service.sweep()
