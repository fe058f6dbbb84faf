"""Vercel Blob REST API client adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.adapters.blob.base import AbstractBlobStore, BlobObject
from app.core.errors import StorageAppError

logger = logging.getLogger(__name__)


def _parse_timestamp(raw: str | None) -> datetime:
    if not raw:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    # fromisoformat only accepts a trailing "Z" from Python 3.11 on
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_blob_object(payload: dict[str, Any]) -> BlobObject:
    return BlobObject(
        pathname=payload["pathname"],
        url=payload["url"],
        uploaded_at=_parse_timestamp(payload.get("uploadedAt")),
        size=payload.get("size"),
    )


class VercelBlobClient(AbstractBlobStore):
    """Client for the Vercel Blob store.

    Uses a shared ``httpx.AsyncClient``; list and put calls are authenticated
    with the read/write token, object bodies are fetched from their public URL.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://blob.vercel-storage.com",
        api_version: str = "7",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Blob read/write token (BLOB_READ_WRITE_TOKEN).
            base_url: Blob API endpoint.
            api_version: Value for the x-api-version header.
            timeout_seconds: Timeout for every HTTP call.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "authorization": f"Bearer {token}",
            "x-api-version": api_version,
        }
        self.client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def list(self, prefix: str, *, limit: int = 100) -> list[BlobObject]:
        try:
            response = await self.client.get(
                self._base_url,
                params={"prefix": prefix, "limit": limit},
                headers=self._headers,
            )
            response.raise_for_status()
            blobs = [_to_blob_object(item) for item in response.json().get("blobs", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            # A successful status with an unexpected body is a failed listing too
            raise StorageAppError(
                code="blob_list_failed",
                message=f"Blob list failed: {exc}",
                details={"context": {"prefix": prefix}},
            ) from exc

        logger.debug("blob.listed", extra={"prefix": prefix, "count": len(blobs)})
        return blobs

    async def fetch(self, blob: BlobObject) -> bytes | None:
        try:
            response = await self.client.get(blob.url)
        except httpx.HTTPError as exc:
            raise StorageAppError(
                code="blob_fetch_failed",
                message=f"Blob fetch failed: {exc}",
                details={"context": {"pathname": blob.pathname}},
            ) from exc

        if not response.is_success:
            logger.warning(
                "blob.fetch_not_ok",
                extra={"blob_pathname": blob.pathname, "http_status": response.status_code},
            )
            return None
        return response.content

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
        headers = {
            **self._headers,
            "x-content-type": content_type,
            "x-vercel-blob-access": access,
            "x-add-random-suffix": "1" if add_random_suffix else "0",
            "x-allow-overwrite": "1" if allow_overwrite else "0",
        }
        try:
            response = await self.client.put(
                f"{self._base_url}/{pathname}",
                content=body,
                headers=headers,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StorageAppError(
                code="blob_put_failed",
                message=f"Blob upload failed: {exc}",
                details={"context": {"pathname": pathname}},
            ) from exc

        return BlobObject(
            pathname=payload.get("pathname", pathname),
            url=payload.get("url", ""),
            uploaded_at=_parse_timestamp(payload.get("uploadedAt"))
            if payload.get("uploadedAt")
            else datetime.now(timezone.utc),
            size=len(body),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
