"""API middleware: CORS, request logging, caller identity, and error handling.

Starlette middleware is a stack (last added, first executed).  ``main.py``
adds them so a request flows:

    Client -> CORS -> RequestLogging -> ErrorHandling -> UserIdentity -> route

RequestLoggingMiddleware therefore sees the *final* status code, including
the structured JSON errors produced by ErrorHandlingMiddleware and the 401
produced by UserIdentityMiddleware.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    DocumentNotFoundError,
    IngestionInProgressError,
    KnowledgeBaseError,
    PermissionDeniedError,
    ValidationError,
    WorkerPoolSaturatedError,
)
from src.utils.logging import bind_request_context, clear_request_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

API_PREFIX = "/api/v1"

# Paths under the API prefix that do not need a caller identity.
_PUBLIC_PATHS = frozenset({f"{API_PREFIX}/health", f"{API_PREFIX}/query/health"})

# Checked in order; the first matching class wins, anything else is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[KnowledgeBaseError], int], ...] = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (DocumentNotFoundError, 404),
    (IngestionInProgressError, 409),
    (WorkerPoolSaturatedError, 503),
)


def status_for(exc: KnowledgeBaseError) -> int:
    """HTTP status code for an application error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


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
# Caller identity
# ---------------------------------------------------------------------------


class UserIdentityMiddleware(BaseHTTPMiddleware):
    """Require the user id header on API routes and expose it on ``request.state``.

    The id is also bound into the structlog context so every event logged
    while handling the request carries ``user_id`` and ``request_id``.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-User-Id") -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path
        if (
            request.method == "OPTIONS"
            or not path.startswith(API_PREFIX)
            or path in _PUBLIC_PATHS
        ):
            return await call_next(request)

        user_id = (request.headers.get(self._header_name) or "").strip()
        if not user_id:
            _logger.warning("missing_user_identity", path=path, header=self._header_name)
            body = ErrorResponse(
                error="Unauthorized",
                detail=f"Missing {self._header_name} header",
            )
            return JSONResponse(status_code=401, content=body.model_dump())

        request.state.user_id = user_id
        bind_request_context(user_id=user_id, request_id=uuid.uuid4().hex[:12])
        try:
            return await call_next(request)
        finally:
            clear_request_context()


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``KnowledgeBaseError`` subclasses and return structured JSON errors.

    The client sees only the error class name and message; the full
    details are logged server-side.  Generic Python exceptions fall
    through to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except KnowledgeBaseError as exc:
            status_code = status_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
