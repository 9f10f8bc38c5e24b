"""Pydantic schemas for admission control requests and responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from lifestream.adapters.rate_limit.base import AdmissionResult


class AdmissionRequest(BaseModel):
    """Request to check (and count) one call for an identifier."""

    identifier: str = Field(
        ...,
        min_length=1,
        description="Opaque caller key to rate limit (e.g., a client address).",
    )


class AdmissionResponse(BaseModel):
    """Admission decision with quota metadata."""

    allowed: bool = Field(..., description="Whether the request may proceed.")
    limit: int = Field(..., description="Maximum requests admitted per window.")
    remaining: int = Field(
        ..., ge=0, description="Quota left in the current window (0 when denied)."
    )
    reset_at: float = Field(
        ...,
        description="UNIX time in milliseconds when the current window ends.",
    )
    retry_after_seconds: int | None = Field(
        default=None,
        description="Seconds to wait before retrying; only set when denied.",
    )

    @classmethod
    def from_result(cls, result: AdmissionResult) -> "AdmissionResponse":
        return cls(
            allowed=result.allowed,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=result.reset_at,
            retry_after_seconds=result.retry_after_seconds,
        )


class LimiterStats(BaseModel):
    """Counters describing the process-wide limiter."""

    limit: int
    window_ms: int
    identifiers: int = Field(..., description="Identifiers currently tracked.")
    max_identifiers: int | None = None
    checks: int
    denials: int
    evictions: int = Field(
        ..., description="Records dropped by expiry sweeps or the size bound."
    )
