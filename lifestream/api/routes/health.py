from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers; never authenticated or rate limited."""

    return {"status": "ok"}
