from __future__ import annotations

from fastapi import APIRouter, Request

from app.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Needs no tenant header and is not rate limited, so load balancers can
    poll it freely.

    Returns:
        dict: Status, API mode and number of tenants held in memory.
    """

    runtime = getattr(request.app.state, "runtime", None)
    return {
        "status": "ok",
        "mode": settings.app.api_mode,
        "tenants_cached": len(runtime.cache) if runtime is not None else 0,
    }
