from __future__ import annotations

from lifestream.api.routes.admissions import router as admissions_router
from lifestream.api.routes.health import router as health_router

__all__ = ["admissions_router", "health_router"]
