from datetime import datetime

from pydantic import BaseModel

from shared.models.outcomes import DetachResult, DocumentStatus, RemoveResult, TrainingStatus


class TrainingResponse(BaseModel):
    chatbot_id: str
    document_id: str
    status: TrainingStatus
    reason: str | None = None
    fragment_count: int = 0


class DetachResponse(BaseModel):
    chatbot_id: str
    document_id: str
    result: DetachResult


class RemoveResponse(BaseModel):
    document_id: str
    result: RemoveResult


class PurgeResponse(BaseModel):
    purged: int


class StatusResponse(BaseModel):
    chatbot_id: str
    document_id: str
    status: DocumentStatus


class BotDocument(BaseModel):
    document_id: str
    filename: str
    mime_type: str | None
    trained_at: datetime


class BotDocumentsResponse(BaseModel):
    chatbot_id: str
    documents: list[BotDocument]
    total: int


class FragmentItem(BaseModel):
    sequence_index: int
    heading: str | None
    chunk_text: str


class FragmentsResponse(BaseModel):
    document_id: str
    fragments: list[FragmentItem]
    total: int


class VectorCountResponse(BaseModel):
    document_id: str
    display_name: str
    count: int


class DeleteBotResponse(BaseModel):
    chatbot_id: str
    documents: dict[str, DetachResult]


class DeleteFileResponse(BaseModel):
    filename: str
    affected_bots: list[str]


class SourceDocumentItem(BaseModel):
    document_id: str
    display_name: str
    mime_type: str
    last_modified_at: datetime | None
    supported: bool


class SourceDocumentsResponse(BaseModel):
    documents: list[SourceDocumentItem]
    total: int


class SearchResponse(BaseModel):
    chatbot_id: str
    query: str
    context: str


class UploadFileResponse(BaseModel):
    filename: str
    size: int
