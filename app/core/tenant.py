"""Tenant resolution and write-mode guard.

Every data request names its tenant through a GUID header. The pure helpers
(`is_valid_tenant_id`, `validate_tenant_id`, `ensure_write_allowed`) hold the
rules; `require_tenant` wires them into FastAPI as a dependency.
"""

from __future__ import annotations

import logging
import re

from fastapi import Request

from app.core.config import settings
from app.core.errors import ForbiddenAppError, ValidationAppError
from app.core.logging import set_tenant_id

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# RFC 4122 textual form; version nibble 1-5, variant nibble 8/9/a/b.
_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_tenant_id(value: str) -> bool:
    """Return True when ``value`` is a GUID in canonical textual form.

    Examples:
        >>> is_valid_tenant_id("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
        True
        >>> is_valid_tenant_id("3f2504e0-4f89-61d3-9a0c-0305e82c3301")
        False
    """
    return bool(_GUID_RE.match(value))


def is_mutating(method: str) -> bool:
    return method.upper() in MUTATING_METHODS


def validate_tenant_id(raw: str | None) -> str:
    """Validate the raw tenant header value.

    Args:
        raw: Header value, or None when the header was not sent.

    Returns:
        The tenant id exactly as supplied.

    Raises:
        ValidationAppError: ``missing_tenant`` when absent or blank,
            ``invalid_tenant`` when not GUID-shaped.
    """
    header = settings.app.tenant_header
    if raw is None or not raw.strip():
        raise ValidationAppError(
            code="missing_tenant",
            message=f"{header} header is required",
            details={"header": header},
        )

    if not is_valid_tenant_id(raw):
        raise ValidationAppError(
            code="invalid_tenant",
            message=f"{header} must be a valid GUID",
            details={"header": header},
        )

    return raw


def ensure_write_allowed(method: str) -> None:
    """Reject mutating verbs while the API runs in read-only mode.

    Raises:
        ForbiddenAppError: When ``method`` mutates and api_mode is ``read``.
    """
    if settings.app.api_mode == "read" and is_mutating(method):
        raise ForbiddenAppError(
            code="read_only_mode",
            message="API is in READ-ONLY mode. Write operations are disabled.",
            details={"method": method.upper(), "mode": settings.app.api_mode},
        )


async def require_tenant(request: Request) -> str:
    """FastAPI dependency resolving the tenant of the current request.

    Usage:
        @router.get("/{resource}")
        async def list_resource(tenant_id: str = Depends(require_tenant)): ...

    Returns:
        The validated tenant id.
    """
    raw = request.headers.get(settings.app.tenant_header)
    try:
        tenant_id = validate_tenant_id(raw)
        ensure_write_allowed(request.method)
    except (ValidationAppError, ForbiddenAppError) as exc:
        logger.warning(
            "tenant.rejected",
            extra={
                "reason": exc.code,
                "method": request.method,
                "header_present": raw is not None,
            },
        )
        raise

    set_tenant_id(tenant_id)
    return tenant_id
