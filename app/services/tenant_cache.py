"""Process-wide cache of tenant document stores.

A tenant's store is built on first access and then reused for the lifetime of
the process; entries are never evicted. Building a store may suspend on blob
I/O, so concurrent first requests for the same tenant share one in-flight
bootstrap task instead of racing each other.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any

from app.core.config import ApiMode
from app.services.document_store import DocumentStore
from app.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def load_seed_template(path: Path) -> dict[str, Any]:
    """Read the seed template from local configuration.

    A missing template yields an empty document.

    Raises:
        ValueError: If the file exists but is not a JSON object.
    """
    if not path.is_file():
        logger.warning("template.missing", extra={"template_path": str(path)})
        return {}

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Seed template {path} must contain a JSON object")
    return data


class TenantCache:
    """Lookup-or-create access to tenant stores.

    Attributes:
        mode: ``read`` serves every tenant from the template; ``crud`` hydrates
            from durable snapshots and seeds missing tenants.
    """

    def __init__(
        self,
        *,
        mode: ApiMode,
        template_path: Path,
        snapshots: SnapshotStore | None = None,
    ) -> None:
        if mode == "crud" and snapshots is None:
            raise ValueError("crud mode requires a snapshot store")

        self.mode = mode
        self._template_path = template_path
        self._template: dict[str, Any] | None = None
        self._snapshots = snapshots
        self._stores: dict[str, DocumentStore] = {}
        self._bootstrapping: dict[str, asyncio.Task[DocumentStore]] = {}

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def get(self, tenant_id: str) -> DocumentStore | None:
        return self._stores.get(tenant_id)

    def _seed(self) -> dict[str, Any]:
        if self._template is None:
            self._template = load_seed_template(self._template_path)
        # Each tenant mutates its own copy
        return copy.deepcopy(self._template)

    async def get_or_create(self, tenant_id: str) -> DocumentStore:
        """Return the tenant's store, bootstrapping it on first access.

        Raises:
            StorageAppError: If a new tenant's initial snapshot cannot be
                saved. Nothing is cached, so the next request retries.
        """
        store = self._stores.get(tenant_id)
        if store is not None:
            return store

        task = self._bootstrapping.get(tenant_id)
        if task is None:
            task = asyncio.ensure_future(self._bootstrap(tenant_id))
            self._bootstrapping[tenant_id] = task
            task.add_done_callback(lambda _t: self._bootstrapping.pop(tenant_id, None))
        else:
            logger.debug("tenant.bootstrap_joined", extra={"tenant_id": tenant_id})

        # Shield so one cancelled request does not abort the shared bootstrap
        return await asyncio.shield(task)

    async def _bootstrap(self, tenant_id: str) -> DocumentStore:
        # Read mode ignores durable storage even when a snapshot store is wired
        snapshots = self._snapshots if self.mode == "crud" else None
        if snapshots is None:
            data = self._seed()
            logger.info("tenant.loaded", extra={"tenant_id": tenant_id, "source": "template", "mode": self.mode})
        else:
            data = await snapshots.load(tenant_id)
            if data is not None:
                logger.info("tenant.loaded", extra={"tenant_id": tenant_id, "source": "snapshot", "mode": self.mode})
            else:
                data = self._seed()
                await snapshots.save(tenant_id, data)
                logger.info("tenant.initialized", extra={"tenant_id": tenant_id, "source": "template", "mode": self.mode})

        store = DocumentStore(data)
        self._stores[tenant_id] = store
        return store
