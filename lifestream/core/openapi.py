"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme to the admission endpoints only, and
documents the rate limit headers returned by guarded routes.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_API_KEY_PATH_PREFIX = "/v1/admissions"

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Maximum requests admitted per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX epoch seconds when the current window ends.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with security and header docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Service key for admission checks.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing = {t.get("name") for t in tags}
        for tag in (
            {"name": "Rate Limit", "description": "Admission decisions and quota."},
            {"name": "Health", "description": "Liveness checks."},
        ):
            if tag["name"] not in existing:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for operation in methods.values():
                if not isinstance(operation, dict):
                    continue
                if path.startswith(_API_KEY_PATH_PREFIX):
                    operation["security"] = [{"ApiKeyAuth": []}]
                if path == "/v1/quota":
                    ok = operation.setdefault("responses", {}).setdefault("200", {})
                    ok.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)
                    operation["responses"].setdefault(
                        "429",
                        {
                            "description": "Rate limit exceeded.",
                            "headers": {
                                **_RATE_LIMIT_HEADERS,
                                "Retry-After": {
                                    "description": "Seconds until the window resets.",
                                    "schema": {"type": "integer"},
                                },
                            },
                        },
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
