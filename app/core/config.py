"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env and template resolution don't depend on the cwd)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


ApiMode = Literal["read", "crud"]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_mode: ApiMode = Field(
        "read",
        description=(
            "'read' serves every tenant from the seed template and rejects writes; "
            "'crud' loads, mutates and persists tenant data in blob storage"
        ),
    )
    tenant_header: str = Field(
        "X-DB-NAME",
        description="Request header carrying the tenant GUID",
    )
    template_path: Path = Field(
        PROJECT_ROOT / "template.json",
        description="Seed template used for tenants without a durable snapshot",
    )
    save_debounce_ms: int = Field(
        1000,
        description="Quiet period before pending mutations are flushed to blob storage",
        ge=0,
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-source rate limiting",
    )
    rate_limit_requests: int = Field(
        30,
        description="Maximum number of requests allowed per window (per source)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Sliding window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class BlobSettings(BaseSettings):
    """Durable blob storage configuration.

    The access token is never given a default: it is injected by the
    deployment environment as BLOB_READ_WRITE_TOKEN.
    """

    backend: Literal["vercel", "memory"] = Field(
        "vercel",
        description="Blob store implementation ('memory' keeps snapshots in-process)",
    )
    read_write_token: str | None = Field(
        None,
        description="Access token required by every blob list/get/put call",
    )
    folder: str = Field(
        "db",
        description="Namespace folder holding one snapshot per tenant",
    )
    base_url: str = Field(
        "https://blob.vercel-storage.com",
        description="Blob API endpoint",
    )
    api_version: str = Field(
        "7",
        description="Value sent in the x-api-version header",
    )
    list_limit: int = Field(
        100,
        description="Maximum number of objects returned by a prefix listing",
        ge=1,
        le=1000,
    )
    timeout_seconds: float = Field(
        30.0,
        description="HTTP timeout for blob API calls in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="BLOB_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    blob: BlobSettings = Field(default_factory=BlobSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
