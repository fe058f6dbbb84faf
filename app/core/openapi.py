"""OpenAPI customization.

Documents the tenant header as an API-key style security scheme so the docs
UI sends it with every request, and exempts the health endpoint.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.config import settings


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add the tenant header scheme."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "TenantHeader",
            {
                "type": "apiKey",
                "in": "header",
                "name": settings.app.tenant_header,
                "description": "Tenant GUID selecting the document store to operate on.",
            },
        )
        schema.setdefault("security", [{"TenantHeader": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Documents",
                "description": (
                    "Resource routes over the tenant document. Writes are rejected "
                    "with 403 while the API runs in read mode."
                ),
            },
            {"name": "Health", "description": "Liveness check."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
