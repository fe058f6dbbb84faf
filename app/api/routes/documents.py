"""Tenant document endpoints (json-server style resource routes).

Every route is rate limited per source and requires the tenant header; the
work itself is delegated to the tenant runtime's dispatcher.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.errors import ValidationAppError
from app.core.rate_limit import enforce_rate_limit
from app.core.tenant import require_tenant
from app.services.dispatcher import DocumentRequest
from app.services.runtime import TenantRuntime, get_runtime

router = APIRouter(tags=["Documents"], dependencies=[Depends(enforce_rate_limit)])

TenantId = Annotated[str, Depends(require_tenant)]
Runtime = Annotated[TenantRuntime, Depends(get_runtime)]


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationAppError(
            code="invalid_body",
            message="Request body must be valid JSON",
        ) from None


async def _dispatch(
    runtime: TenantRuntime,
    tenant_id: str,
    request: Request,
    resource: str | None = None,
    record_id: str | None = None,
) -> JSONResponse:
    body = await _read_body(request) if request.method in {"POST", "PUT", "PATCH"} else None
    result = await runtime.dispatcher.dispatch(
        tenant_id,
        DocumentRequest(
            method=request.method,
            resource=resource,
            record_id=record_id,
            query=tuple(request.query_params.multi_items()),
            body=body,
        ),
    )
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers or None)


@router.get("/db")
async def read_database(request: Request, tenant_id: TenantId, runtime: Runtime) -> JSONResponse:
    """Return the tenant's full document."""
    return await _dispatch(runtime, tenant_id, request)


@router.get("/{resource}")
async def read_resource(resource: str, request: Request, tenant_id: TenantId, runtime: Runtime) -> JSONResponse:
    """List a collection (with filters, sorting and paging) or read a singular resource."""
    return await _dispatch(runtime, tenant_id, request, resource)


@router.post("/{resource}", status_code=201)
async def create_record(resource: str, request: Request, tenant_id: TenantId, runtime: Runtime) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource)


@router.put("/{resource}")
async def replace_resource(resource: str, request: Request, tenant_id: TenantId, runtime: Runtime) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource)


@router.patch("/{resource}")
async def update_resource(resource: str, request: Request, tenant_id: TenantId, runtime: Runtime) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource)


@router.get("/{resource}/{record_id}")
async def read_record(
    resource: str, record_id: str, request: Request, tenant_id: TenantId, runtime: Runtime
) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource, record_id)


@router.put("/{resource}/{record_id}")
async def replace_record(
    resource: str, record_id: str, request: Request, tenant_id: TenantId, runtime: Runtime
) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource, record_id)


@router.patch("/{resource}/{record_id}")
async def update_record(
    resource: str, record_id: str, request: Request, tenant_id: TenantId, runtime: Runtime
) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource, record_id)


@router.delete("/{resource}/{record_id}")
async def delete_record(
    resource: str, record_id: str, request: Request, tenant_id: TenantId, runtime: Runtime
) -> JSONResponse:
    return await _dispatch(runtime, tenant_id, request, resource, record_id)
