"""End-to-end tests for the tenant document API.

Apps are built through the factory with an in-memory blob store, and the
TestClient context manager drives the lifespan so shutdown flushes run.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.adapters.blob.in_memory import InMemoryBlobStore
from app.core.app_factory import create_app
from app.core.config import settings

TENANT_ID = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"
OTHER_TENANT_ID = "c9bf9e57-1685-4c89-bafb-ff5af830be8a"
SNAPSHOT_PATH = f"db/{TENANT_ID}.json"

HEADERS = {"X-DB-NAME": TENANT_ID}


@pytest.fixture
def long_debounce(monkeypatch: pytest.MonkeyPatch) -> None:
    # Timers never fire during a test; only the shutdown flush saves
    monkeypatch.setattr(settings.app, "save_debounce_ms", 60_000)


class TestTenantHeader:
    def test_missing_header_returns_400(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "missing_tenant"
        assert "X-DB-NAME" in error["message"]
        assert error["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.parametrize("value", ["", "mydb", "3f2504e0-4f89-61d3-9a0c-0305e82c3301"])
    def test_invalid_header_returns_400(self, template_path: Path, value: str):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers={"X-DB-NAME": value})

        assert response.status_code == 400
        assert response.json()["error"]["code"] in {"missing_tenant", "invalid_tenant"}

    def test_uppercase_guid_accepted(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers={"X-DB-NAME": TENANT_ID.upper()})

        assert response.status_code == 200

    def test_health_needs_no_tenant(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "mode": "read", "tenants_cached": 0}


class TestReadMode:
    def test_serves_seed_template(self, template_path: Path, seed_template: dict):
        with TestClient(create_app()) as client:
            response = client.get("/db", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == seed_template

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("POST", "/posts"),
            ("PUT", "/posts/1"),
            ("PATCH", "/posts/1"),
            ("DELETE", "/posts/1"),
            ("PUT", "/profile"),
        ],
    )
    def test_writes_forbidden_without_state_change(self, template_path: Path, method: str, path: str):
        with TestClient(create_app()) as client:
            before = client.get("/db", headers=HEADERS).json()
            response = client.request(method, path, headers=HEADERS, json={"title": "nope"})
            after = client.get("/db", headers=HEADERS).json()

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "read_only_mode"
        assert before == after

    def test_read_mode_never_touches_blob_storage(self, template_path: Path, blob_store: InMemoryBlobStore):
        with TestClient(create_app(blobs=blob_store)) as client:
            client.get("/posts", headers=HEADERS)
            client.post("/posts", headers=HEADERS, json={"title": "nope"})

        assert blob_store.put_calls == []

    def test_reads_are_idempotent(self, template_path: Path):
        with TestClient(create_app()) as client:
            first = client.get("/posts", headers=HEADERS)
            second = client.get("/posts", headers=HEADERS)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()


class TestQueries:
    def test_filter_by_field(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers=HEADERS, params={"author": "jane"})

        assert [p["id"] for p in response.json()] == [2]

    def test_pagination_sets_total_count(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers=HEADERS, params={"_page": 2, "_limit": 1})

        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [2]
        assert response.headers["X-Total-Count"] == "2"

    def test_sort_descending(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers=HEADERS, params={"_sort": "views", "_order": "desc"})

        assert [p["views"] for p in response.json()] == [250, 100]

    def test_singular_resource(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/profile", headers=HEADERS)

        assert response.json() == {"name": "typicode"}

    def test_unknown_resource_returns_404(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/nothing", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "resource_not_found"

    def test_unknown_record_returns_404(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts/999", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "record_not_found"

    def test_invalid_paging_value_returns_400(self, template_path: Path):
        with TestClient(create_app()) as client:
            response = client.get("/posts", headers=HEADERS, params={"_page": "abc"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_query"


class TestCrudMode:
    def test_crud_flow(self, template_path: Path, crud_mode, long_debounce, blob_store: InMemoryBlobStore):
        with TestClient(create_app(blobs=blob_store)) as client:
            created = client.post("/posts", headers=HEADERS, json={"title": "Third"})
            assert created.status_code == 201
            assert created.json() == {"id": 3, "title": "Third"}

            patched = client.patch("/posts/3", headers=HEADERS, json={"views": 1})
            assert patched.json() == {"id": 3, "title": "Third", "views": 1}

            replaced = client.put("/posts/3", headers=HEADERS, json={"title": "Replaced"})
            assert replaced.json() == {"id": 3, "title": "Replaced"}

            deleted = client.delete("/posts/1", headers=HEADERS)
            assert deleted.status_code == 200
            assert deleted.json() == {}

            profile = client.patch("/profile", headers=HEADERS, json={"bio": "hi"})
            assert profile.json() == {"name": "typicode", "bio": "hi"}

            posts = client.get("/posts", headers=HEADERS).json()

        assert [p["id"] for p in posts] == [2, 3]

    def test_duplicate_id_returns_409(self, template_path: Path, crud_mode, long_debounce, blob_store):
        with TestClient(create_app(blobs=blob_store)) as client:
            response = client.post("/posts", headers=HEADERS, json={"id": 1, "title": "dup"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "duplicate_id"

    @pytest.mark.parametrize("content", [b"[1, 2]", b"{not json"])
    def test_invalid_body_returns_400(self, template_path: Path, crud_mode, long_debounce, blob_store, content: bytes):
        with TestClient(create_app(blobs=blob_store)) as client:
            response = client.post(
                "/posts", headers={**HEADERS, "Content-Type": "application/json"}, content=content
            )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_body"

    def test_tenants_are_isolated(self, template_path: Path, crud_mode, long_debounce, blob_store):
        with TestClient(create_app(blobs=blob_store)) as client:
            client.post("/posts", headers=HEADERS, json={"title": "mine"})
            other = client.get("/posts", headers={"X-DB-NAME": OTHER_TENANT_ID}).json()
            health = client.get("/health").json()

        assert len(other) == 2
        assert health["tenants_cached"] == 2

    def test_new_tenant_is_seeded_and_saved(
        self, template_path: Path, crud_mode, long_debounce, blob_store, seed_template: dict
    ):
        with TestClient(create_app(blobs=blob_store)) as client:
            client.get("/posts", headers=HEADERS)
            assert blob_store.put_calls == [SNAPSHOT_PATH]

        assert json.loads(blob_store.get_body(SNAPSHOT_PATH)) == seed_template

    def test_existing_snapshot_is_loaded(self, template_path: Path, crud_mode, long_debounce, blob_store):
        stored = {"notes": [{"id": 7, "text": "persisted"}]}
        blob_store.add(SNAPSHOT_PATH, json.dumps(stored).encode())

        with TestClient(create_app(blobs=blob_store)) as client:
            response = client.get("/db", headers=HEADERS)

        assert response.json() == stored
        assert blob_store.put_calls == []

    def test_shutdown_flushes_final_state(self, template_path: Path, crud_mode, long_debounce, blob_store):
        with TestClient(create_app(blobs=blob_store)) as client:
            for title in ("a", "b", "c"):
                client.post("/posts", headers=HEADERS, json={"title": title})
            # Only the bootstrap save so far
            assert blob_store.put_calls == [SNAPSHOT_PATH]

        assert blob_store.put_calls == [SNAPSHOT_PATH, SNAPSHOT_PATH]
        saved = json.loads(blob_store.get_body(SNAPSHOT_PATH))
        assert [p["title"] for p in saved["posts"]][-3:] == ["a", "b", "c"]

    def test_shutdown_skips_tenants_without_pending_writes(
        self, template_path: Path, crud_mode, long_debounce, blob_store
    ):
        with TestClient(create_app(blobs=blob_store)) as client:
            client.get("/posts", headers=HEADERS)
            client.post("/posts", headers={"X-DB-NAME": OTHER_TENANT_ID}, json={"title": "x"})

        assert blob_store.put_calls.count(SNAPSHOT_PATH) == 1
        assert blob_store.put_calls.count(f"db/{OTHER_TENANT_ID}.json") == 2

    def test_post_to_plain_value_is_rejected_and_not_saved(
        self, template_path: Path, crud_mode, long_debounce, blob_store
    ):
        blob_store.add(SNAPSHOT_PATH, json.dumps({"title": "site"}).encode())

        with TestClient(create_app(blobs=blob_store)) as client:
            response = client.post("/title", headers=HEADERS, json={"x": 1})
            current = client.get("/db", headers=HEADERS).json()

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_resource"
        assert current == {"title": "site"}
        assert blob_store.put_calls == []

    def test_failed_write_schedules_nothing(self, template_path: Path, crud_mode, long_debounce, blob_store):
        with TestClient(create_app(blobs=blob_store)) as client:
            client.patch("/posts/999", headers=HEADERS, json={"title": "missing"})

        assert blob_store.put_calls == [SNAPSHOT_PATH]


class TestRateLimit:
    def test_31st_request_is_rejected(self, template_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings.app, "rate_limit_enabled", True)

        with TestClient(create_app()) as client:
            statuses = [client.get("/posts", headers=HEADERS).status_code for _ in range(30)]
            rejected = client.get("/posts", headers=HEADERS)

        assert statuses == [200] * 30
        assert rejected.status_code == 429
        assert rejected.json()["error"]["code"] == "rate_limit_exceeded"
        assert int(rejected.headers["Retry-After"]) > 0
        assert rejected.headers["X-RateLimit-Remaining"] == "0"

    def test_rate_guard_runs_before_tenant_validation(self, template_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings.app, "rate_limit_enabled", True)
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

        with TestClient(create_app()) as client:
            client.get("/posts", headers=HEADERS)
            response = client.get("/posts")

        assert response.status_code == 429

    def test_sources_are_limited_separately(self, template_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings.app, "rate_limit_enabled", True)
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

        with TestClient(create_app()) as client:
            first = client.get("/posts", headers={**HEADERS, "X-Forwarded-For": "10.0.0.1"})
            second = client.get("/posts", headers={**HEADERS, "X-Forwarded-For": "10.0.0.2, 10.0.0.9"})
            repeat = client.get("/posts", headers={**HEADERS, "X-Forwarded-For": "10.0.0.1"})

        assert (first.status_code, second.status_code, repeat.status_code) == (200, 200, 429)

    def test_health_is_not_rate_limited(self, template_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings.app, "rate_limit_enabled", True)
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

        with TestClient(create_app()) as client:
            statuses = {client.get("/health").status_code for _ in range(5)}

        assert statuses == {200}


def test_unexpected_error_returns_500(template_path: Path):
    with TestClient(create_app(), raise_server_exceptions=False) as client:
        client.app.state.runtime.dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("db exploded"))
        response = client.get("/posts", headers={**HEADERS, "X-Request-ID": "req-500"})

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "internal_server_error"
    assert "exploded" not in error["message"]
    assert error["request_id"] == "req-500"
    assert response.headers["X-Request-ID"] == "req-500"
    assert response.headers.get("X-Request-Duration-ms") is not None
