"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Rate limiting strategy:
- Sliding-window log per request source.
- The source is the first address in X-Forwarded-For when the service runs
  behind a proxy, otherwise the raw client address.
- Best effort: counters live in this process only.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.core.config import settings
from app.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = InMemorySlidingWindowRateLimiter(
            limit=settings.app.rate_limit_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
        )
        _limiter_config = config

    return _limiter


def resolve_request_source(request: Request) -> str:
    """Identify the caller for rate limiting purposes.

    Args:
        request: FastAPI request.

    Returns:
        str: Forwarded-for client address, or the socket peer address.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else "unknown"


def _hash_source(source: str) -> str:
    """Hash the source address for logging without exposing client IPs."""
    return hashlib.sha256(source.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the per-source request ceiling.

    Raises:
        RateLimitAppError: When the source exceeded its budget (HTTP 429).
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    source = resolve_request_source(request)
    source_hash = _hash_source(source)

    result = limiter.consume(source)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "source_hash": source_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_s": settings.app.rate_limit_window_seconds,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "source_hash": source_hash,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": settings.app.rate_limit_window_seconds,
            "retry_after_s": retry_after,
        },
    )

    details = None
    if settings.app.rate_limit_include_headers:
        details = {
            "retry_after": retry_after,
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
        }

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Too many requests. Please try again later.",
        details=details,
    )
