"""Maps domain errors to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.models.errors import (
    NotFoundError,
    StoreWriteConflict,
    TrainingBridgeError,
    UnsupportedContentTypeError,
    ValidationError,
)

RETRY_AFTER_SECONDS = "5"


def status_code_for(exc: TrainingBridgeError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, UnsupportedContentTypeError):
        return 415
    if isinstance(exc, StoreWriteConflict):
        return 409
    if exc.retryable:
        return 503
    return 502


async def training_bridge_error_handler(request: Request, exc: TrainingBridgeError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger = request.app.state.logging
    if status_code >= 500:
        logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    else:
        logger.warning("%s %s rejected: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)

    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "retryable": exc.retryable},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrainingBridgeError, training_bridge_error_handler)
