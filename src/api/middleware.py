"""API middleware: CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and automatic
conversion of ``TenderLensError`` subclasses into JSON ``ErrorResponse``
bodies.

Starlette middleware is a stack (last added, first executed).  ``main.py``
adds ``ErrorHandlingMiddleware`` first and ``RequestLoggingMiddleware``
second, so the request log sees the final status code even when the error
handler replaced the response.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    ConfigurationError,
    DocumentValidationError,
    ProviderUnavailableError,
    TenderLensError,
)
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
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
    """Log every HTTP request with method, path, status code, and duration.

    For the streaming ingest endpoint the duration covers the time until
    the response headers were sent, not the whole stream.
    """

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


def status_code_for(exc: TenderLensError) -> int:
    """Return the HTTP status an application error maps to."""
    if isinstance(exc, DocumentValidationError):
        return exc.status_code
    if isinstance(exc, (ProviderUnavailableError, ConfigurationError)):
        return 503
    return 500


def error_response(exc: TenderLensError) -> JSONResponse:
    """Render *exc* as a sanitized :class:`ErrorResponse`."""
    body = ErrorResponse(error=exc.message, detail=type(exc).__name__)
    return JSONResponse(status_code=status_code_for(exc), content=body.model_dump())


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``TenderLensError`` subclasses and return structured JSON errors.

    Stack traces are logged server-side only, never sent to the client.
    Generic Python exceptions bubble up to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except TenderLensError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
