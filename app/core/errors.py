"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses. The HTTP status for
each family is chosen in app.core.exception_handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    header: str
    tenant_id: str
    resource: str
    record_id: str
    method: str
    mode: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input (tenant header, body) is invalid."""


class ForbiddenAppError(AppError):
    """Raised when a write is attempted while the API is read-only."""


class NotFoundAppError(AppError):
    """Raised when a resource or record does not exist."""


class ConflictAppError(AppError):
    """Raised when a create would duplicate an existing record id."""


class RateLimitAppError(AppError):
    """Raised when a request source exceeds its rate ceiling."""


class StorageAppError(AppError):
    """Raised when the durable blob store cannot complete an operation."""
