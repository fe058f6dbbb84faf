from __future__ import annotations

from app.core.app_factory import create_app


def test_tenant_header_documented_as_security_scheme():
    schema = create_app().openapi()

    scheme = schema["components"]["securitySchemes"]["TenantHeader"]
    assert scheme == {
        "type": "apiKey",
        "in": "header",
        "name": "X-DB-NAME",
        "description": "Tenant GUID selecting the document store to operate on.",
    }
    assert schema["security"] == [{"TenantHeader": []}]


def test_health_is_exempt_from_tenant_header():
    schema = create_app().openapi()

    assert schema["paths"]["/health"]["get"]["security"] == []
    assert "security" not in schema["paths"]["/{resource}"]["get"]


def test_tags_are_described():
    schema = create_app().openapi()

    assert {tag["name"] for tag in schema["tags"]} >= {"Documents", "Health"}


def test_schema_is_cached():
    app = create_app()

    assert app.openapi() is app.openapi()
