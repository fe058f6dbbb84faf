"""Global exception handlers producing the API's error envelope.

Every failure leaves the service as::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

``details`` is present only when the error carries structured context. The
status code is chosen by error family (see ``status_for_error``); anything
that is not an ``AppError`` becomes a generic 500 without internals.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    ConflictAppError,
    ForbiddenAppError,
    NotFoundAppError,
    RateLimitAppError,
    StorageAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ForbiddenAppError, 403),
    (NotFoundAppError, 404),
    (ConflictAppError, 409),
    (RateLimitAppError, 429),
    (StorageAppError, 500),
)

# details key -> response header, for 429 responses
_RATE_LIMIT_HEADERS = (
    ("retry_after", "Retry-After"),
    ("limit", "X-RateLimit-Limit"),
    ("remaining", "X-RateLimit-Remaining"),
    ("reset_at", "X-RateLimit-Reset"),
)


def status_for_error(exc: AppError) -> int:
    """Map a domain error to its HTTP status (400 when no family matches)."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers or None)


def _rate_limit_headers(exc: RateLimitAppError) -> dict[str, str]:
    details = exc.details or {}
    return {header: str(details[key]) for key, header in _RATE_LIMIT_HEADERS if key in details}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error; 5xx are logged as errors, client errors as warnings.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).
    """
    status_code = status_for_error(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "has_details": bool(exc.details),
        },
    )

    headers = _rate_limit_headers(exc) if isinstance(exc, RateLimitAppError) else None
    return error_response(status_code, exc.code, exc.message, details=exc.details, headers=headers)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors.

    The exception is logged with its type and message; the client only ever
    sees a generic message (no stack traces, no exception text).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return error_response(
        500,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
