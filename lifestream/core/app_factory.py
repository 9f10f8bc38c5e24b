"""Application factory for the admission service."""

from __future__ import annotations

from fastapi import FastAPI

from lifestream.api.routes import admissions_router, health_router
from lifestream.core.config import settings
from lifestream.core.exception_handlers import setup_exception_handlers
from lifestream.core.logging import configure_logging
from lifestream.core.middleware import request_id_middleware
from lifestream.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Life-stream Admission API",
        description=(
            "Fixed-window admission control for the life-stream journaling "
            "service. Checks a caller identifier against a per-window quota "
            "and returns allowed, limit, remaining and reset_at."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(admissions_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
