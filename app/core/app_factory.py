"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.blob.base import AbstractBlobStore
from app.api.routes import documents_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.runtime import TenantRuntime

logger = logging.getLogger(__name__)


def create_app(*, blobs: AbstractBlobStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        blobs: Optional blob store to use instead of the configured backend.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        application.state.runtime = TenantRuntime.build(settings, blobs=blobs)
        logger.info("app.started", extra={"mode": settings.app.api_mode})
        try:
            yield
        finally:
            # uvicorn runs this on SIGTERM/SIGINT before the process exits
            await application.state.runtime.shutdown()
            logger.info("app.stopped")

    app = FastAPI(
        title="Tenant JSON Store",
        description=(
            "Multi-tenant JSON document store. Each tenant, named by a GUID in "
            f"the {settings.app.tenant_header} header, gets its own document "
            "seeded from a template, served from memory and persisted to blob "
            "storage after a short quiet period."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers (health first: documents routes match any top-level path)
    app.include_router(health_router)
    app.include_router(documents_router)

    apply_openapi_customizations(app)

    return app
