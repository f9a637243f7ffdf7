"""Training router: trains blob PDFs and Google Drive documents for a chatbot."""

from fastapi import APIRouter, Query, Request

from server.models.requests import DriveTrainRequest
from server.models.responses import TrainingResponse
from shared.models.document import SourceKind, source_kind_for_mime
from shared.models.errors import UnsupportedContentTypeError, ValidationError
from shared.models.outcomes import RefreshReport, TrainingOutcome

training_router = APIRouter()


def _to_response(chatbot_id: str, outcome: TrainingOutcome) -> TrainingResponse:
    return TrainingResponse(
        chatbot_id=chatbot_id,
        document_id=outcome.document_id,
        status=outcome.status,
        reason=outcome.reason,
        fragment_count=outcome.fragment_count,
    )


@training_router.post("/train/blob/{filename}", tags=["Training"])
async def train_blob_document(
    request: Request,
    filename: str,
    chatbot_id: str | None = Query(default=None, alias="chatbotId"),
) -> TrainingResponse:
    """Train a PDF stored in blob storage for a chatbot.

    Documents that are already trained and unchanged are only linked to the
    chatbot; nothing is re-embedded.
    """
    if not chatbot_id:
        raise ValidationError('Query parameter "chatbotId" is required.')
    request.app.state.logging.info("Training blob '%s' for chatbot '%s'.", filename, chatbot_id)
    outcome = await request.app.state.training_service.train_source_document(SourceKind.BLOB, filename, chatbot_id)
    return _to_response(chatbot_id, outcome)


@training_router.post("/drive-train/single", tags=["Training"])
async def train_drive_document(request: Request, body: DriveTrainRequest) -> TrainingResponse:
    """Train a Google Doc or Google Sheet for a chatbot.

    The Drive metadata (name, type, modification time) is always re-read from
    Drive; the mimeType sent by the caller is only used to reject unsupported
    files early.
    """
    if body.mime_type is not None and source_kind_for_mime(body.mime_type) is not SourceKind.DRIVE:
        raise UnsupportedContentTypeError(
            f"MIME type '{body.mime_type}' is not supported. Only Google Docs and Google Sheets can be trained."
        )
    request.app.state.logging.info(
        "Training Drive file '%s' (%s) for chatbot '%s'.", body.name or body.file_id, body.file_id, body.chatbot_id
    )
    outcome = await request.app.state.training_service.train_source_document(
        SourceKind.DRIVE, body.file_id, body.chatbot_id
    )
    return _to_response(body.chatbot_id, outcome)


@training_router.post("/train/{chatbot_id}/refresh", tags=["Training"])
async def refresh_bot_documents(request: Request, chatbot_id: str) -> RefreshReport:
    """Retrain every Drive document of a chatbot that changed since it was trained."""
    return await request.app.state.training_service.refresh_bot_documents(chatbot_id)
