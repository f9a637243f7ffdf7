from pydantic import BaseModel


class VectorFilter(BaseModel):
    """Backend-neutral point filter. Unset fields do not constrain the match;
    an empty document_ids list matches nothing.

    Attributes:
        document_ids: Restrict to points of these documents.
        is_active:    Restrict to active (True) or soft-deleted (False) points.
    """

    document_ids: list[str] | None = None
    is_active: bool | None = None

    @classmethod
    def for_document(cls, document_id: str, is_active: bool | None = None) -> "VectorFilter":
        return cls(document_ids=[document_id], is_active=is_active)

    def matches_nothing(self) -> bool:
        return self.document_ids is not None and len(self.document_ids) == 0
