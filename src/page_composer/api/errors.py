"""Maps domain errors onto HTTP responses with a ``{code, message, details}`` envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from page_composer.api.pagination import InvalidCursorError
from page_composer.api.schemas import ErrorResponse
from page_composer.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PageComposerError,
    StaleWriteError,
    UnknownSlotError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order, so subclasses come before their bases.
STATUS_BY_ERROR: tuple[tuple[type[PageComposerError], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnknownSlotError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StaleWriteError, status.HTTP_412_PRECONDITION_FAILED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


def status_for(exc: PageComposerError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _envelope(status_code: int, code: str, message: str, details: dict) -> JSONResponse:
    body = ErrorResponse(code=code, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def page_composer_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, PageComposerError)
    status_code = status_for(exc)
    if status_code >= 500:
        logger.exception("Unhandled domain error on %s %s", request.method, request.url.path, exc_info=exc)
    details = {**exc.details, "retryable": exc.retryable}
    return _envelope(status_code, exc.code, exc.message, details)


async def invalid_cursor_handler(_request: Request, exc: Exception) -> JSONResponse:
    return _envelope(status.HTTP_400_BAD_REQUEST, "invalid_cursor", str(exc), {})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PageComposerError, page_composer_error_handler)
    app.add_exception_handler(InvalidCursorError, invalid_cursor_handler)
