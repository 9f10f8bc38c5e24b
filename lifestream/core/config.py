"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production may inject everything through the environment
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    BaseSettings fills fields from environment variables; static type checkers
    still treat them as constructor arguments, hence the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Service-wide configuration: API keys and admission control."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on admission endpoints",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client rate limiting on guarded routes",
    )
    rate_limit_requests: int = Field(
        10,
        description="Maximum number of requests admitted per window (per identifier)",
        ge=1,
    )
    rate_limit_window_ms: int = Field(
        60_000,
        description="Rate limit window length in milliseconds",
        ge=1,
    )
    rate_limit_max_identifiers: int | None = Field(
        10_000,
        description="Upper bound on tracked identifiers (least recently seen are evicted)",
        ge=1,
    )
    rate_limit_sweep_interval_ms: int | None = Field(
        60_000,
        description="Minimum interval between sweeps of expired identifiers",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers in responses",
    )
    rate_limit_trust_forwarded_for: bool = Field(
        True,
        description="Identify clients by the first X-Forwarded-For address when present",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: 'json' or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
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
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
