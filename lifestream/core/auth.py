"""Service API key authentication.

The admission endpoints are consumed by other request-handling layers, not by
end users. Those callers present a shared key in ``X-API-Key``; valid keys
come from the comma-separated ``APP_API_KEYS`` setting.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from lifestream.core.config import settings
from lifestream.core.errors import AuthenticationAppError
from lifestream.core.logging import fingerprint

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key1"))
        ['key1', 'key2']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Check a presented key against the configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is unknown, or if authentication is
            required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "auth.misconfigured",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": fingerprint(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency requiring a valid ``X-API-Key`` header.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        return

    if not x_api_key:
        logger.warning("auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": fingerprint(x_api_key)})
