"""VectorPoint model: metadata stored alongside each embedded fragment in a RAG backend."""

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """Metadata payload stored with each vector.

    The tracking store never holds these payloads; it only keys documents by
    document_id and records which bots use them.

    Attributes:
        document_id:    Stable external id of the source document.
        display_name:   Human-readable document name, used for attribution.
        mime_type:      Content type of the source document.
        source_kind:    "blob" or "drive".
        sequence_index: Zero-based position of the fragment within the document.
        chunk_text:     Text of the fragment.
        heading:        Nearest enclosing heading path ("A > B"), if any.
        is_active:      False once the vector is soft-deleted; queries filter on True.
        trained_at:     ISO-8601 time of the training run that wrote the vector.
    """

    document_id: str
    display_name: str
    mime_type: str
    source_kind: str
    sequence_index: int
    chunk_text: str
    heading: str | None = None
    is_active: bool = True
    trained_at: str
