"""Debounced persistence of tenant documents.

Bursts of writes to the same tenant collapse into a single snapshot upload
issued once the tenant has been quiet for ``delay_seconds``. A crash between
the last write and the delayed flush loses those writes; shutdown flushes
pending tenants explicitly (see ``flush_all``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from app.core.errors import StorageAppError
from app.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], dict[str, Any]]


class PersistenceScheduler:
    """Per-tenant cancel-and-restart save timers.

    Each pending save is an ``asyncio.Task`` sleeping out the quiet period.
    At most one task exists per tenant; scheduling again cancels the old one.
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        *,
        delay_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")

        self._snapshots = snapshots
        self.delay_seconds = delay_seconds
        self._clock = clock
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._providers: dict[str, SnapshotProvider] = {}
        self._last_saved_at: dict[str, float] = {}

    def schedule(self, tenant_id: str, snapshot_provider: SnapshotProvider) -> None:
        """(Re)start the tenant's save timer.

        The provider is called when the timer fires, so only the state current
        at that moment is written.
        """
        previous = self._pending.get(tenant_id)
        if previous is not None and not previous.done():
            previous.cancel()

        self._providers[tenant_id] = snapshot_provider
        task = asyncio.get_running_loop().create_task(
            self._save_after_delay(tenant_id, snapshot_provider),
            name=f"debounced-save:{tenant_id}",
        )
        self._pending[tenant_id] = task
        logger.debug(
            "persistence.scheduled",
            extra={"tenant_id": tenant_id, "delay_s": self.delay_seconds, "restarted": previous is not None},
        )

    async def _save_after_delay(self, tenant_id: str, snapshot_provider: SnapshotProvider) -> None:
        await asyncio.sleep(self.delay_seconds)
        try:
            await self._snapshots.save(tenant_id, snapshot_provider())
            self._last_saved_at[tenant_id] = self._clock()
        except StorageAppError as exc:
            # No retry: the next write for this tenant schedules a new attempt
            logger.error(
                "persistence.save_failed",
                extra={"tenant_id": tenant_id, "error_code": exc.code, "error_msg": exc.message},
            )
        finally:
            if self._pending.get(tenant_id) is asyncio.current_task():
                del self._pending[tenant_id]
                self._providers.pop(tenant_id, None)

    def pending_tenants(self) -> list[str]:
        """Tenants whose in-memory state has diverged from their snapshot."""
        return [tenant_id for tenant_id, task in self._pending.items() if not task.done()]

    def has_pending(self, tenant_id: str) -> bool:
        task = self._pending.get(tenant_id)
        return task is not None and not task.done()

    def last_saved_at(self, tenant_id: str) -> float | None:
        """UNIX time of the tenant's last successful debounced save."""
        return self._last_saved_at.get(tenant_id)

    async def flush_all(self) -> list[str]:
        """Cancel every pending timer and save those tenants immediately.

        All saves run concurrently and are awaited together; failures are
        logged and never raised so shutdown can always complete.

        Returns:
            Tenant ids whose final state was saved successfully.
        """
        pending = {
            tenant_id: self._providers[tenant_id]
            for tenant_id, task in self._pending.items()
            if not task.done() and tenant_id in self._providers
        }
        for tenant_id in pending:
            self._pending.pop(tenant_id).cancel()
            self._providers.pop(tenant_id, None)

        if not pending:
            logger.info("shutdown.nothing_pending")
            return []

        logger.info("shutdown.flushing", extra={"tenants": len(pending)})
        tenant_ids = list(pending)
        results = await asyncio.gather(
            *(self._snapshots.save(tenant_id, pending[tenant_id]()) for tenant_id in tenant_ids),
            return_exceptions=True,
        )

        saved: list[str] = []
        for tenant_id, result in zip(tenant_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "shutdown.flush_failed",
                    extra={"tenant_id": tenant_id, "error_type": type(result).__name__, "error_msg": str(result)},
                )
                continue
            self._last_saved_at[tenant_id] = self._clock()
            saved.append(tenant_id)

        logger.info("shutdown.flushed", extra={"saved": len(saved), "failed": len(tenant_ids) - len(saved)})
        return saved
