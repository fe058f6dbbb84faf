from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class BlobObject:
    """Metadata of one stored object as reported by the blob service.

    Attributes:
        pathname: Storage key, e.g. ``db/<tenant>.json``.
        url: Public URL the body can be fetched from.
        uploaded_at: Server-assigned upload timestamp (timezone-aware).
        size: Body size in bytes, when known.
    """

    pathname: str
    url: str
    uploaded_at: datetime
    size: int | None = None


class AbstractBlobStore(ABC):
    """Interface for object stores holding tenant snapshots."""

    @abstractmethod
    async def list(self, prefix: str, *, limit: int = 100) -> list[BlobObject]:
        """List objects whose pathname starts with ``prefix``.

        Raises:
            StorageAppError: If the backend call fails.
        """
        ...

    @abstractmethod
    async def fetch(self, blob: BlobObject) -> bytes | None:
        """Download an object's body.

        Returns:
            The body, or None when the backend answered with a non-success status.

        Raises:
            StorageAppError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
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
        """Upload ``body`` under ``pathname``.

        Raises:
            StorageAppError: If the backend rejects or fails the upload.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the store."""
        return None
