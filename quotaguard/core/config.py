"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Rule lists are supplied as JSON arrays, e.g.::

    RATE_LIMIT_CLIENT_RULES='[{"client_id": "partner-1", "permit_limit": 1000, "window_seconds": 60}]'
    RATE_LIMIT_RESOURCE_RULES='[{"endpoint": "POST:/v1/auth/*", "permit_limit": 5, "window_seconds": 60}]'
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
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
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class RuleSettings(BaseModel):
    """Common shape of a configured rate limit rule."""

    permit_limit: int = Field(..., ge=1, description="Requests permitted per window")
    window_seconds: float = Field(..., gt=0, description="Window length in seconds")
    queue_limit: int = Field(0, ge=0, description="Advisory queue size (not enforced)")


class ClientRuleSettings(RuleSettings):
    """Rule bound to one caller identity."""

    client_id: str = Field(..., min_length=1, description="Exact identity to match")


class ResourceRuleSettings(RuleSettings):
    """Rule bound to a resource; a trailing ``*`` makes it a prefix rule."""

    endpoint: str = Field(..., min_length=1, description="Resource, e.g. GET:/v1/casinos*")


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_auth_required: bool = Field(
        True,
        description="Whether the rate limit admin endpoints require X-Admin-Key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Admission control configuration."""

    enabled: bool = Field(
        True,
        description="Global kill switch; when false every request is admitted",
    )
    backend: str = Field(
        "memory",
        description="Counter store backend: memory or redis",
    )
    default_permit_limit: int = Field(
        100,
        description="Requests permitted per window when no other rule matches",
        ge=1,
    )
    default_window_seconds: float = Field(
        60.0,
        description="Default window length in seconds",
        gt=0,
    )
    default_queue_limit: int = Field(
        0,
        description="Advisory queue size for the default rule",
        ge=0,
    )
    client_rules: list[ClientRuleSettings] = Field(
        default_factory=list,
        description="Ordered client rules (JSON array)",
    )
    resource_rules: list[ResourceRuleSettings] = Field(
        default_factory=list,
        description="Ordered resource rules (JSON array); first match wins",
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the counter store is unavailable",
    )
    client_id_header: str = Field(
        "X-API-Key",
        description="Header identifying the caller; falls back to the client IP",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on responses",
    )
    limit_header_name: str = Field("X-RateLimit-Limit")
    remaining_header_name: str = Field("X-RateLimit-Remaining")
    reset_header_name: str = Field("X-RateLimit-Reset")
    max_local_entries: int = Field(
        100_000,
        description="Soft bound on in-memory counters before expired ones are swept",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared counter store connection."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Socket connect/read timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header")

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
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
