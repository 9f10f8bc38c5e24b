"""Rate limiting dependency for FastAPI routes.

Wires the admission controller into the HTTP layer.

Rate limiting strategy:
- Fixed-window limit per client address.
- Behind a proxy the first ``X-Forwarded-For`` hop identifies the client;
  without any usable address every caller shares the ``127.0.0.1`` bucket.
- Quota is reported through ``X-RateLimit-*`` headers; a denied caller gets
  HTTP 429 with ``Retry-After``.
"""

from __future__ import annotations

import logging
import math

from fastapi import HTTPException, Request, Response, status

from lifestream.adapters.rate_limit.base import AbstractRateLimiter, AdmissionResult
from lifestream.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from lifestream.core.config import settings
from lifestream.core.logging import fingerprint

logger = logging.getLogger(__name__)

FALLBACK_IDENTIFIER = "127.0.0.1"

_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int, int | None, int | None] | None = None


def _current_config() -> tuple[int, int, int | None, int | None]:
    return (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_ms,
        settings.app.rate_limit_max_identifiers,
        settings.app.rate_limit_sweep_interval_ms,
    )


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide admission controller.

    The instance is cached in-module so counts survive across requests. If
    the rate limit configuration changes (primarily in tests), it is rebuilt
    with empty state.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = _current_config()
    if _limiter is None or _limiter_config != config:
        max_requests, window_ms, max_identifiers, sweep_interval_ms = config
        _limiter = InMemoryFixedWindowRateLimiter(
            max_requests=max_requests,
            window_ms=window_ms,
            max_identifiers=max_identifiers,
            sweep_interval_ms=sweep_interval_ms,
        )
        _limiter_config = config
        logger.info(
            "rate_limit.configured",
            extra={
                "limit": max_requests,
                "window_ms": window_ms,
                "max_identifiers": max_identifiers,
            },
        )

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter; the next request starts from empty state."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def client_identifier(request: Request) -> str:
    """Identify the caller of ``request`` for rate limiting.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address; never empty.
    """

    if settings.app.rate_limit_trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return FALLBACK_IDENTIFIER


def rate_limit_headers(result: AdmissionResult) -> dict[str, str]:
    """Build the X-RateLimit-* headers for a decision.

    ``X-RateLimit-Reset`` is expressed in UNIX epoch seconds, rounded up so a
    client waiting until then always lands in the next window.
    """

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(result.reset_at / 1000.0))),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


async def enforce_rate_limit(request: Request, response: Response) -> AdmissionResult | None:
    """FastAPI dependency enforcing the per-client rate limit.

    When enabled, counts one request against the caller's window. If the
    caller is over quota, raises HTTP 429.

    Args:
        request: FastAPI request.
        response: Response whose headers receive the quota information.

    Returns:
        The admitting decision, or None when rate limiting is disabled.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return None

    limiter = get_rate_limiter()
    identifier = client_identifier(request)
    key_hash = fingerprint(identifier)

    result = limiter.check(identifier)
    headers = rate_limit_headers(result) if settings.app.rate_limit_include_headers else {}

    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        response.headers.update(headers)
        return result

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after_s": result.retry_after_seconds,
        },
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
