from fastapi import APIRouter, Depends, Response

from lifestream.adapters.rate_limit.base import AdmissionResult
from lifestream.core.auth import verify_api_key
from lifestream.core.config import settings
from lifestream.core.rate_limit import enforce_rate_limit, get_rate_limiter, rate_limit_headers
from lifestream.schemas.admission import AdmissionRequest, AdmissionResponse, LimiterStats

router = APIRouter(tags=["Rate Limit"])


@router.post(
    "/admissions",
    response_model=AdmissionResponse,
    dependencies=[Depends(verify_api_key)],
)
async def check_admission(payload: AdmissionRequest, response: Response) -> AdmissionResponse:
    """Check one call for an identifier on behalf of another service.

    Both outcomes return 200: the caller decides what to do with a denial
    by looking at ``allowed``.

    Args:
        payload: Identifier to check.
        response: Response receiving the X-RateLimit-* headers.

    Returns:
        AdmissionResponse: The admission decision.
    """
    result = get_rate_limiter().check(payload.identifier)
    if settings.app.rate_limit_include_headers:
        response.headers.update(rate_limit_headers(result))
    return AdmissionResponse.from_result(result)


@router.get(
    "/admissions/stats",
    response_model=LimiterStats,
    dependencies=[Depends(verify_api_key)],
)
async def admission_stats() -> LimiterStats:
    """Expose limiter counters; identifiers themselves are never returned."""
    return LimiterStats(**get_rate_limiter().stats())


@router.get("/quota", response_model=AdmissionResponse)
async def read_quota(
    result: AdmissionResult | None = Depends(enforce_rate_limit),
) -> AdmissionResponse:
    """Count this call against the caller's own quota and report what is left.

    Raises:
        HTTPException: 429 once the caller has used up the window.
    """
    if result is None:
        # limiting disabled: nothing was counted, no window is open
        return AdmissionResponse(
            allowed=True,
            limit=settings.app.rate_limit_requests,
            remaining=settings.app.rate_limit_requests,
            reset_at=0,
        )
    return AdmissionResponse.from_result(result)
