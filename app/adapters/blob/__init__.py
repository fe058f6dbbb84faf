"""Blob storage adapter layer - abstracts over the durable object store."""

from app.adapters.blob.base import AbstractBlobStore, BlobObject
from app.adapters.blob.factory import create_blob_store
from app.adapters.blob.in_memory import InMemoryBlobStore
from app.adapters.blob.vercel_client import VercelBlobClient

__all__ = [
    "AbstractBlobStore",
    "BlobObject",
    "InMemoryBlobStore",
    "VercelBlobClient",
    "create_blob_store",
]
