"""Pytest configuration and fixtures shared across all test modules.

Environment variables are seeded here, before any test module imports
``lifestream.core.config``, so the global settings see them.
"""

import os

import pytest

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def fresh_rate_limiter():
    """Start and finish each test with an empty process-wide limiter."""
    from lifestream.core.rate_limit import reset_rate_limiter

    reset_rate_limiter()
    yield
    reset_rate_limiter()
