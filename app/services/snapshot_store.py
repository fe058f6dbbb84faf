"""Durable tenant snapshots on top of the blob store.

Each tenant owns exactly one canonical object, ``<folder>/<tenant_id>.json``.
Loading is forgiving (a missing or unreadable snapshot means "start from the
template"), saving is strict (callers decide how to handle the failure).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from app.adapters.blob.base import AbstractBlobStore
from app.core.errors import StorageAppError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class SnapshotStore:
    """Load and save full tenant documents as JSON blobs.

    Attributes:
        folder: Namespace folder all snapshots live under.
    """

    def __init__(self, blobs: AbstractBlobStore, *, folder: str = "db", list_limit: int = 100) -> None:
        self._blobs = blobs
        self.folder = folder.strip("/")
        self._list_limit = list_limit

    def pathname_for(self, tenant_id: str) -> str:
        return f"{self.folder}/{tenant_id}.json"

    async def load(self, tenant_id: str) -> dict[str, Any] | None:
        """Return the most recently uploaded snapshot for ``tenant_id``.

        Only objects whose pathname is exactly the canonical one are
        considered; other objects sharing the tenant prefix are ignored.

        Returns:
            The parsed document, or None when no snapshot exists or it cannot
            be read. Failures are logged, never raised.
        """
        expected = self.pathname_for(tenant_id)
        try:
            blobs = await self._blobs.list(f"{self.folder}/{tenant_id}", limit=self._list_limit)
            candidates = [blob for blob in blobs if blob.pathname == expected]
            if not candidates:
                logger.info("snapshot.not_found", extra={"tenant_id": tenant_id})
                return None

            latest = max(candidates, key=lambda blob: blob.uploaded_at)
            logger.info(
                "snapshot.loading",
                extra={
                    "tenant_id": tenant_id,
                    "blob_pathname": latest.pathname,
                    "uploaded_at": latest.uploaded_at.isoformat(),
                },
            )
            raw = await self._blobs.fetch(latest)
            if raw is None:
                return None

            document = json.loads(raw)
        except (StorageAppError, ValueError) as exc:
            logger.warning(
                "snapshot.load_failed",
                extra={
                    "tenant_id": tenant_id,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return None

        if not isinstance(document, dict):
            logger.warning(
                "snapshot.load_failed",
                extra={"tenant_id": tenant_id, "error_type": "NotAnObject"},
            )
            return None
        return document

    async def save(self, tenant_id: str, state: dict[str, Any]) -> None:
        """Overwrite the tenant's canonical snapshot with ``state``.

        Raises:
            StorageAppError: ``snapshot_save_failed`` when the upload fails.
        """
        pathname = self.pathname_for(tenant_id)
        body = json.dumps(state, indent=2).encode("utf-8")
        try:
            blob = await self._blobs.put(
                pathname,
                body,
                content_type=JSON_CONTENT_TYPE,
                access="public",
                add_random_suffix=False,
                allow_overwrite=True,
            )
        except StorageAppError as exc:
            logger.error(
                "snapshot.save_failed",
                extra={"tenant_id": tenant_id, "blob_pathname": pathname, "error_msg": exc.message},
            )
            raise StorageAppError(
                code="snapshot_save_failed",
                message=f"Failed to save snapshot for tenant {tenant_id}",
                details={"tenant_id": tenant_id},
            ) from exc

        logger.info(
            "snapshot.saved",
            extra={"tenant_id": tenant_id, "blob_pathname": blob.pathname, "bytes": len(body)},
        )
