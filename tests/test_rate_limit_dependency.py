"""Tests for the HTTP rate limit dependency and the /v1/quota route."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from lifestream.adapters.rate_limit.base import AdmissionResult
from lifestream.core import rate_limit
from lifestream.core.app_factory import create_app
from lifestream.core.config import settings
from lifestream.core.rate_limit import (
    FALLBACK_IDENTIFIER,
    client_identifier,
    get_rate_limiter,
    rate_limit_headers,
)


@pytest.fixture
def client(fresh_rate_limiter, monkeypatch) -> TestClient:
    monkeypatch.setattr(settings.app, "rate_limit_enabled", True)
    monkeypatch.setattr(settings.app, "rate_limit_requests", 3)
    monkeypatch.setattr(settings.app, "rate_limit_window_ms", 60_000)
    monkeypatch.setattr(settings.app, "rate_limit_include_headers", True)
    monkeypatch.setattr(settings.app, "rate_limit_trust_forwarded_for", True)
    return TestClient(create_app())


def _request(headers: dict[str, str] | None = None, host: str | None = "10.1.1.1"):
    return SimpleNamespace(
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client=SimpleNamespace(host=host) if host is not None else None,
    )


class TestClientIdentifier:
    def test_uses_first_forwarded_hop(self, monkeypatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_trust_forwarded_for", True)
        request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2"})

        assert client_identifier(request) == "203.0.113.7"

    def test_ignores_forwarded_header_when_untrusted(self, monkeypatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_trust_forwarded_for", False)
        request = _request({"X-Forwarded-For": "203.0.113.7"})

        assert client_identifier(request) == "10.1.1.1"

    def test_blank_forwarded_header_falls_back_to_peer(self, monkeypatch) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_trust_forwarded_for", True)
        request = _request({"X-Forwarded-For": " , 10.0.0.2"})

        assert client_identifier(request) == "10.1.1.1"

    def test_falls_back_to_loopback_without_any_address(self) -> None:
        assert client_identifier(_request(host=None)) == FALLBACK_IDENTIFIER == "127.0.0.1"


def test_headers_for_admission() -> None:
    result = AdmissionResult(allowed=True, limit=10, remaining=4, reset_at=1_700_000_000_500)

    assert rate_limit_headers(result) == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "1700000001",
    }


def test_headers_for_denial_include_retry_after() -> None:
    result = AdmissionResult(
        allowed=False, limit=10, remaining=0, reset_at=60_000, retry_after_seconds=42
    )

    headers = rate_limit_headers(result)

    assert headers["Retry-After"] == "42"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"] == "60"


def test_quota_route_admits_then_throttles(client: TestClient) -> None:
    forwarded = {"X-Forwarded-For": "198.51.100.1"}

    remaining = []
    for _ in range(3):
        resp = client.get("/v1/quota", headers=forwarded)
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "3"
        remaining.append(resp.json()["remaining"])

    assert remaining == [2, 1, 0]

    blocked = client.get("/v1/quota", headers=forwarded)
    assert blocked.status_code == 429
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert int(blocked.headers["Retry-After"]) > 0
    assert "X-Request-ID" in blocked.headers


def test_quota_is_tracked_per_client(client: TestClient) -> None:
    for _ in range(3):
        client.get("/v1/quota", headers={"X-Forwarded-For": "198.51.100.1"})

    assert client.get("/v1/quota", headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 429
    other = client.get("/v1/quota", headers={"X-Forwarded-For": "198.51.100.2"})
    assert other.status_code == 200
    assert other.json()["remaining"] == 2


def test_headers_can_be_disabled(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_include_headers", False)

    for _ in range(3):
        resp = client.get("/v1/quota")
        assert "X-RateLimit-Limit" not in resp.headers

    blocked = client.get("/v1/quota")
    assert blocked.status_code == 429
    assert "Retry-After" not in blocked.headers


def test_disabled_rate_limit_never_throttles(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_enabled", False)

    for _ in range(10):
        resp = client.get("/v1/quota")
        assert resp.status_code == 200
        assert resp.json()["remaining"] == 3


def test_health_is_never_rate_limited(client: TestClient) -> None:
    for _ in range(10):
        assert client.get("/health").status_code == 200


def test_limiter_rebuilt_when_config_changes(fresh_rate_limiter, monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_requests", 5)
    first = get_rate_limiter()
    assert get_rate_limiter() is first

    monkeypatch.setattr(settings.app, "rate_limit_requests", 7)
    second = get_rate_limiter()

    assert second is not first
    assert second.stats()["limit"] == 7


def test_reset_rate_limiter_drops_instance(fresh_rate_limiter) -> None:
    first = get_rate_limiter()
    rate_limit.reset_rate_limiter()

    assert get_rate_limiter() is not first
