"""API middleware: CORS, request logging and error handling.

Starlette runs middleware last-added-first, so main.py adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware``; the logger
then sees the final status code after errors were turned into JSON.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from thinkfolio.api.schemas import ErrorResponse
from thinkfolio.utils.errors import (
    EmbeddingError,
    ExtractionError,
    IngestionError,
    InvalidTransitionError,
    LLMError,
    NotFoundError,
    StoreError,
    ThinkFolioError,
    ValidationError,
)
from thinkfolio.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First match wins; InvalidTransitionError also covers ConcurrentIngestionError.
_STATUS_CODES: list[tuple[type[ThinkFolioError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (ExtractionError, 422),
    (EmbeddingError, 502),
    (LLMError, 502),
    (StoreError, 500),
    (IngestionError, 500),
]


def status_code_for(exc: ThinkFolioError) -> int:
    """HTTP status for an application error; unknown subclasses are 500."""
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins unless *allowed_origins* is given."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn ``ThinkFolioError`` subclasses into JSON :class:`ErrorResponse` bodies.

    Details go to the server log; clients get the error type and a message.
    Storage errors are reported generically since their messages can carry
    SQL or filesystem details.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except ThinkFolioError as exc:
            status_code = status_code_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            detail = "Internal storage error" if isinstance(exc, StoreError) else exc.message
            body = ErrorResponse(error=type(exc).__name__, detail=detail)
            return JSONResponse(status_code=status_code, content=body.model_dump())
