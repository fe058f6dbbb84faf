"""Tenant runtime: the single owner of per-process tenant state.

The runtime is built once in the application lifespan and stored on
``app.state.runtime``; request handlers reach it through ``get_runtime``.
Its ``shutdown`` is the shutdown reconciler: pending tenant writes are
flushed before the blob client is closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from app.adapters.blob.base import AbstractBlobStore
from app.adapters.blob.factory import create_blob_store
from app.core.config import Settings, settings as default_settings
from app.services.dispatcher import RequestDispatcher
from app.services.persistence_scheduler import PersistenceScheduler
from app.services.snapshot_store import SnapshotStore
from app.services.tenant_cache import TenantCache

logger = logging.getLogger(__name__)


@dataclass
class TenantRuntime:
    cache: TenantCache
    dispatcher: RequestDispatcher
    scheduler: PersistenceScheduler | None = None
    blobs: AbstractBlobStore | None = None

    @classmethod
    def build(
        cls,
        cfg: Settings | None = None,
        *,
        blobs: AbstractBlobStore | None = None,
    ) -> "TenantRuntime":
        """Wire cache, scheduler and dispatcher for the configured mode.

        In ``read`` mode durable storage is bypassed entirely, so no blob
        store is created and no credential is required.

        Args:
            cfg: Settings to use; defaults to the global settings.
            blobs: Optional pre-built blob store (tests, local tooling).
        """
        cfg = cfg or default_settings
        mode = cfg.app.api_mode

        if mode == "read":
            cache = TenantCache(mode=mode, template_path=cfg.app.template_path)
            logger.info("runtime.ready", extra={"mode": mode})
            return cls(cache=cache, dispatcher=RequestDispatcher(cache))

        blobs = blobs or create_blob_store(cfg.blob)
        snapshots = SnapshotStore(blobs, folder=cfg.blob.folder, list_limit=cfg.blob.list_limit)
        scheduler = PersistenceScheduler(snapshots, delay_seconds=cfg.app.save_debounce_ms / 1000)
        cache = TenantCache(mode=mode, template_path=cfg.app.template_path, snapshots=snapshots)
        logger.info(
            "runtime.ready",
            extra={"mode": mode, "blob_backend": type(blobs).__name__, "debounce_ms": cfg.app.save_debounce_ms},
        )
        return cls(
            cache=cache,
            dispatcher=RequestDispatcher(cache, scheduler),
            scheduler=scheduler,
            blobs=blobs,
        )

    async def shutdown(self) -> list[str]:
        """Flush tenants with pending writes, then release the blob client.

        Returns:
            Tenant ids whose pending state was saved.
        """
        logger.info("shutdown.started", extra={"tenants_cached": len(self.cache)})
        saved: list[str] = []
        try:
            if self.scheduler is not None:
                saved = await self.scheduler.flush_all()
        finally:
            if self.blobs is not None:
                await self.blobs.aclose()
        return saved


def get_runtime(request: Request) -> TenantRuntime:
    """FastAPI dependency returning the runtime built at startup."""
    return request.app.state.runtime
