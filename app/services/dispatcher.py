"""Request dispatching against tenant document stores.

Routes translate HTTP requests into a ``DocumentRequest``; the dispatcher
resolves the tenant's store, applies the operation and, for successful
writes, schedules a debounced snapshot save. Reads never touch persistence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import ValidationAppError
from app.core.tenant import is_mutating
from app.services.document_store import DocumentStore
from app.services.persistence_scheduler import PersistenceScheduler
from app.services.tenant_cache import TenantCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentRequest:
    """One CRUD operation addressed to a tenant.

    Attributes:
        method: HTTP verb.
        resource: Top-level resource name, or None for the whole document.
        record_id: Record id within a collection, if addressed.
        query: Query string pairs (collection listing only).
        body: Parsed JSON body for writes.
    """

    method: str
    resource: str | None = None
    record_id: str | None = None
    query: tuple[tuple[str, str], ...] = ()
    body: Any = None


@dataclass
class DocumentResponse:
    status_code: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)


class RequestDispatcher:
    """Apply document requests to the right tenant store."""

    def __init__(self, cache: TenantCache, scheduler: PersistenceScheduler | None = None) -> None:
        self._cache = cache
        self._scheduler = scheduler

    async def dispatch(self, tenant_id: str, request: DocumentRequest) -> DocumentResponse:
        """Run ``request`` for ``tenant_id``.

        Raises:
            AppError: For client errors (unknown resource, bad body, ...).
                The store is left unchanged and nothing is scheduled.
        """
        store = await self._cache.get_or_create(tenant_id)
        response = self._apply(store, request)

        if is_mutating(request.method) and self._scheduler is not None:
            self._scheduler.schedule(tenant_id, store.snapshot)

        logger.info(
            "document.dispatched",
            extra={
                "tenant_id": tenant_id,
                "method": request.method,
                "resource": request.resource,
                "record_id": request.record_id,
                "status_code": response.status_code,
            },
        )
        return response

    def _apply(self, store: DocumentStore, request: DocumentRequest) -> DocumentResponse:
        method = request.method.upper()
        name = request.resource
        record_id = request.record_id

        if name is None:
            if method == "GET":
                return DocumentResponse(200, store.snapshot())
            raise ValidationAppError(code="unsupported_operation", message=f"{method} is not supported on the database root")

        if method == "GET":
            if record_id is not None:
                return DocumentResponse(200, store.get_record(name, record_id))
            if not store.is_collection(name):
                return DocumentResponse(200, store.read(name))
            result = store.list_records(name, request.query)
            headers = {}
            if result.total is not None:
                headers["X-Total-Count"] = str(result.total)
            return DocumentResponse(200, result.items, headers)

        if method == "POST":
            if record_id is not None:
                raise ValidationAppError(code="unsupported_operation", message="POST must target a collection, not a record")
            return DocumentResponse(201, store.create(name, request.body))

        if method == "PUT":
            if record_id is None:
                return DocumentResponse(200, store.replace_singular(name, request.body))
            return DocumentResponse(200, store.replace(name, record_id, request.body))

        if method == "PATCH":
            if record_id is None:
                return DocumentResponse(200, store.patch_singular(name, request.body))
            return DocumentResponse(200, store.patch(name, record_id, request.body))

        if method == "DELETE":
            if record_id is None:
                raise ValidationAppError(code="unsupported_operation", message="DELETE must target a record")
            store.delete(name, record_id)
            return DocumentResponse(200, {})

        raise ValidationAppError(code="unsupported_operation", message=f"Method {method} is not supported")
