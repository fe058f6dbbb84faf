"""In-process blob store.

Keeps every upload (including random-suffixed ones) so listing behaves like
the hosted service: several objects can share a tenant prefix and each has
its own upload timestamp. Intended for local development and tests; contents
vanish with the process.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Callable

from app.adapters.blob.base import AbstractBlobStore, BlobObject
from app.core.errors import StorageAppError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _suffixed(pathname: str) -> str:
    stem, dot, ext = pathname.rpartition(".")
    suffix = secrets.token_urlsafe(6)
    if not dot:
        return f"{pathname}-{suffix}"
    return f"{stem}-{suffix}.{ext}"


class InMemoryBlobStore(AbstractBlobStore):
    """Dictionary-backed blob store keyed by pathname."""

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._objects: dict[str, tuple[BlobObject, bytes]] = {}
        self.put_calls: list[str] = []

    async def list(self, prefix: str, *, limit: int = 100) -> list[BlobObject]:
        matches = [
            blob for blob, _ in self._objects.values() if blob.pathname.startswith(prefix)
        ]
        return matches[:limit]

    async def fetch(self, blob: BlobObject) -> bytes | None:
        stored = self._objects.get(blob.pathname)
        return stored[1] if stored else None

    async def put(
        self,
        pathname: str,
        body: bytes,
        *,
        content_type: str = "application/json",
        access: str = "public",
        add_random_suffix: bool = False,
        allow_overwrite: bool = True,
    ) -> BlobObject:
        if add_random_suffix:
            pathname = _suffixed(pathname)
        elif pathname in self._objects and not allow_overwrite:
            raise StorageAppError(
                code="blob_exists",
                message=f"Blob already exists: {pathname}",
            )

        self.put_calls.append(pathname)
        return self.add(pathname, body)

    def add(
        self,
        pathname: str,
        body: bytes,
        *,
        uploaded_at: datetime | None = None,
    ) -> BlobObject:
        """Store ``body`` directly, optionally with an explicit upload time."""
        blob = BlobObject(
            pathname=pathname,
            url=f"memory://{pathname}",
            uploaded_at=uploaded_at or self._clock(),
            size=len(body),
        )
        self._objects[pathname] = (blob, body)
        return blob

    def get_body(self, pathname: str) -> bytes | None:
        stored = self._objects.get(pathname)
        return stored[1] if stored else None
