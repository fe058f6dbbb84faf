"""Rate limiting adapters.

The guard layer depends on AbstractRateLimiter only, so the in-process
sliding-window log can be replaced by a shared store without touching routes.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemorySlidingWindowRateLimiter",
    "RateLimitResult",
]
