"""Pydantic models for trainable documents and their tracking state.

Hierarchy:
  Document       : a trainable unit of content as described by its source.
  Fragment       : a bounded, ordered slice of a document's extracted text.
  TrackingRecord : persisted training state of one document (camelCase JSON).
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.helper.datetime_helper import as_utc

MIME_PDF = "application/pdf"
MIME_GOOGLE_DOC = "application/vnd.google-apps.document"
MIME_GOOGLE_SHEET = "application/vnd.google-apps.spreadsheet"


class SourceKind(str, Enum):
    """Where a document's content lives."""

    BLOB = "blob"
    DRIVE = "drive"


SUPPORTED_MIME_TYPES: dict[SourceKind, tuple[str, ...]] = {
    SourceKind.BLOB: (MIME_PDF,),
    SourceKind.DRIVE: (MIME_GOOGLE_DOC, MIME_GOOGLE_SHEET),
}


def source_kind_for_mime(mime_type: str | None) -> SourceKind | None:
    """Resolve the source kind serving a MIME type, or None if no source supports it."""
    for kind, mime_types in SUPPORTED_MIME_TYPES.items():
        if mime_type in mime_types:
            return kind
    return None


class Document(BaseModel):
    """A trainable document.

    Attributes:
        document_id:      Stable external id (blob filename or Drive file id).
        display_name:     Human-readable name, may differ from document_id.
        mime_type:        Content type, selects the extraction strategy.
        source_kind:      Source serving the content.
        last_modified_at: External modification time, None when the source has none.
    """

    document_id: str = Field(min_length=1)
    display_name: str
    mime_type: str
    source_kind: SourceKind
    last_modified_at: datetime | None = None

    @field_validator("last_modified_at")
    @classmethod
    def _normalise_modified(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class Fragment(BaseModel):
    sequence_index: int = Field(ge=0)
    text: str = Field(min_length=1)
    heading: str | None = None


class TrackingRecord(BaseModel):
    """Training state of one document, persisted as
    {documentId, filename, mimeType, usedByBots[], trainedAt}.

    used_by_bots keeps insertion order and never holds duplicates.
    """

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId", min_length=1)
    filename: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    used_by_bots: list[str] = Field(default_factory=list, alias="usedByBots")
    trained_at: datetime = Field(alias="trainedAt")

    @field_validator("trained_at")
    @classmethod
    def _normalise_trained(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("used_by_bots")
    @classmethod
    def _dedupe_bots(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def is_current_for(self, document: Document) -> bool:
        """True when no retraining is needed for the given document version."""
        if document.last_modified_at is None:
            return True
        return self.trained_at >= document.last_modified_at

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


TrackingState = dict[str, TrackingRecord]
