"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so the global settings
are built for tests: in-memory blob storage and the 'testing' env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("BLOB_BACKEND", "memory")
os.environ.setdefault("APP_API_MODE", "read")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import json
from pathlib import Path

import pytest

from app.adapters.blob.in_memory import InMemoryBlobStore
from app.core import rate_limit as rate_limit_module
from app.core.config import settings

TENANT_ID = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"
OTHER_TENANT_ID = "c9bf9e57-1685-4c89-bafb-ff5af830be8a"

SEED_TEMPLATE = {
    "posts": [
        {"id": 1, "title": "Hello world", "author": "typicode", "views": 100},
        {"id": 2, "title": "Second post", "author": "jane", "views": 250},
    ],
    "comments": [{"id": 1, "body": "Nice post", "postId": 1}],
    "profile": {"name": "typicode"},
}


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def template_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Write the seed template to a temp file and point settings at it."""
    path = tmp_path / "template.json"
    path.write_text(json.dumps(SEED_TEMPLATE), encoding="utf-8")
    monkeypatch.setattr(settings.app, "template_path", path)
    return path


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture(autouse=True)
def _reset_rate_limiter(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test a fresh limiter and default guard settings."""
    monkeypatch.setattr(rate_limit_module, "_limiter", None)
    monkeypatch.setattr(rate_limit_module, "_limiter_config", None)
    monkeypatch.setattr(settings.app, "rate_limit_enabled", False)
    monkeypatch.setattr(settings.app, "api_mode", "read")


@pytest.fixture
def crud_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.app, "api_mode", "crud")


@pytest.fixture
def seed_template() -> dict:
    return json.loads(json.dumps(SEED_TEMPLATE))
