"""Factory pattern for creating blob store instances."""

from app.adapters.blob.base import AbstractBlobStore
from app.adapters.blob.in_memory import InMemoryBlobStore
from app.adapters.blob.vercel_client import VercelBlobClient
from app.core.config import BlobSettings, settings
from app.core.errors import ValidationAppError


def create_blob_store(blob_settings: BlobSettings | None = None) -> AbstractBlobStore:
    """Instantiate the configured blob store.

    Args:
        blob_settings: Optional override; defaults to the global settings.

    Returns:
        AbstractBlobStore: Configured blob store.

    Raises:
        ValidationAppError: If backend-specific requirements are not met.
    """
    cfg = blob_settings or settings.blob
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryBlobStore()

    if backend == "vercel":
        if not cfg.read_write_token:
            raise ValidationAppError(
                code="blob_missing_token",
                message="Vercel blob backend requires BLOB_READ_WRITE_TOKEN environment variable",
            )
        return VercelBlobClient(
            token=cfg.read_write_token,
            base_url=cfg.base_url,
            api_version=cfg.api_version,
            timeout_seconds=cfg.timeout_seconds,
        )

    raise ValidationAppError(
        code="blob_unknown_backend",
        message=f"Unknown blob backend: '{backend}'. Supported backends: vercel, memory",
    )
