"""Unit tests for tenant header validation and the read-only guard."""

from unittest.mock import patch

import pytest

from app.core.errors import ForbiddenAppError, ValidationAppError
from app.core.tenant import ensure_write_allowed, is_mutating, is_valid_tenant_id, validate_tenant_id


class TestIsValidTenantId:
    @pytest.mark.parametrize(
        "value",
        [
            "3f2504e0-4f89-41d3-9a0c-0305e82c3301",
            "3F2504E0-4F89-41D3-9A0C-0305E82C3301",
            "c9bf9e57-1685-4c89-bafb-ff5af830be8a",
            "00000000-0000-1000-8000-000000000000",
            "ffffffff-ffff-5fff-bfff-ffffffffffff",
            "6ba7b810-9dad-21d1-a0b4-00c04fd430c8",
            "6ba7b810-9dad-31d1-80b4-00c04fd430c8",
        ],
    )
    def test_accepts_well_formed_guids(self, value: str) -> None:
        assert is_valid_tenant_id(value) is True

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not-a-guid",
            "3f2504e04f8941d39a0c0305e82c3301",  # no dashes
            "3f2504e0-4f89-41d3-9a0c-0305e82c330",  # too short
            "3f2504e0-4f89-41d3-9a0c-0305e82c33011",  # too long
            "3f2504e-04f89-41d3-9a0c-0305e82c3301",  # dash misplaced
            "3f2504e0-4f89-01d3-9a0c-0305e82c3301",  # version 0
            "3f2504e0-4f89-61d3-9a0c-0305e82c3301",  # version 6
            "3f2504e0-4f89-41d3-7a0c-0305e82c3301",  # variant 7
            "3f2504e0-4f89-41d3-ca0c-0305e82c3301",  # variant c
            "3g2504e0-4f89-41d3-9a0c-0305e82c3301",  # non-hex
            "{3f2504e0-4f89-41d3-9a0c-0305e82c3301}",
            " 3f2504e0-4f89-41d3-9a0c-0305e82c3301",
        ],
    )
    def test_rejects_malformed_values(self, value: str) -> None:
        assert is_valid_tenant_id(value) is False


class TestValidateTenantId:
    def test_returns_value_unchanged(self) -> None:
        value = "3F2504E0-4F89-41D3-9A0C-0305E82C3301"
        assert validate_tenant_id(value) == value

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_header(self, raw) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            validate_tenant_id(raw)

        assert exc_info.value.code == "missing_tenant"
        assert "X-DB-NAME" in exc_info.value.message

    def test_invalid_header(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            validate_tenant_id("tenant-1")

        assert exc_info.value.code == "invalid_tenant"
        assert "valid GUID" in exc_info.value.message


class TestEnsureWriteAllowed:
    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "post"])
    @patch("app.core.tenant.settings")
    def test_read_mode_rejects_writes(self, mock_settings, method: str) -> None:
        mock_settings.app.api_mode = "read"

        with pytest.raises(ForbiddenAppError) as exc_info:
            ensure_write_allowed(method)

        assert exc_info.value.code == "read_only_mode"

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    @patch("app.core.tenant.settings")
    def test_read_mode_allows_reads(self, mock_settings, method: str) -> None:
        mock_settings.app.api_mode = "read"
        ensure_write_allowed(method)

    @patch("app.core.tenant.settings")
    def test_crud_mode_allows_writes(self, mock_settings) -> None:
        mock_settings.app.api_mode = "crud"
        for method in ("POST", "PUT", "PATCH", "DELETE"):
            ensure_write_allowed(method)


def test_is_mutating() -> None:
    assert is_mutating("delete") is True
    assert is_mutating("GET") is False
