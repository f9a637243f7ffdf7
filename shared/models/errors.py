"""Exception hierarchy of the training bridge.

retryable marks failures that may succeed when repeated unchanged
(timeouts, throttling, transient 5xx from a collaborator).
"""


class TrainingBridgeError(Exception):
    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class NotFoundError(TrainingBridgeError):
    """A document or bot is not present in tracking or at its source."""


class ValidationError(TrainingBridgeError):
    """Malformed request parameters or malformed tracking state."""


class ExtractionError(TrainingBridgeError):
    """The source document is inaccessible or its text cannot be extracted."""


class EmbeddingError(TrainingBridgeError):
    """The embedding gateway failed (quota, timeout, malformed response)."""


class VectorStoreError(TrainingBridgeError):
    """The vector store rejected or failed an upsert, query, update or delete."""


class StorageError(TrainingBridgeError):
    """Reading or writing the persisted tracking object failed."""


class StoreWriteConflict(TrainingBridgeError):
    """A tracking save was rejected because another save is in progress."""

    def __init__(self, message: str = "Tracking state is being written by another operation.") -> None:
        super().__init__(message, retryable=True)


class UnsupportedContentTypeError(TrainingBridgeError):
    """No extraction strategy exists for the document's MIME type."""


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
