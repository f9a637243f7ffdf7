"""Result types of the training, cleanup and status operations."""

from enum import Enum

from pydantic import BaseModel


class TrainingStatus(str, Enum):
    TRAINED = "trained"
    ALREADY_CURRENT = "already_current"
    BOT_ATTACHED = "bot_attached"
    SKIPPED = "skipped"


class TrainingOutcome(BaseModel):
    """Outcome of TrainingService.train_document().

    Attributes:
        status:         What happened.
        document_id:    The document concerned.
        reason:         Why training was skipped (only for SKIPPED).
        fragment_count: Number of fragments embedded (only for TRAINED).
    """

    status: TrainingStatus
    document_id: str
    reason: str | None = None
    fragment_count: int = 0

    @classmethod
    def skipped(cls, document_id: str, reason: str) -> "TrainingOutcome":
        return cls(status=TrainingStatus.SKIPPED, document_id=document_id, reason=reason)


class DetachResult(str, Enum):
    DETACHED = "detached"
    NOT_LINKED = "not_linked"
    DOCUMENT_NOT_FOUND = "document_not_found"


class RemoveResult(str, Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"


class DocumentStatus(str, Enum):
    NOT_TRAINED = "not_trained"
    STALE = "stale"
    CURRENT = "current"


class SweepReport(BaseModel):
    """Summary of one reconciliation sweep over the vector store."""

    orphan_documents: list[str] = []
    orphans_deactivated: int = 0
    inactive_deleted: int = 0


class RefreshReport(BaseModel):
    """Summary of a stale-document refresh for one bot."""

    bot_id: str
    outcomes: list[TrainingOutcome] = []
    failures: dict[str, str] = {}
