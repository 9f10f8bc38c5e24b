"""Rate limiter interfaces.

Callers depend on this abstraction rather than on a concrete limiter, and
branch on ``AdmissionResult.allowed`` instead of catching exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class AdmissionResult:
    """Admission decision for a single checked request.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Configured maximum requests per window.
        remaining: Quota left in the current window (0 when denied).
        reset_at: Absolute time in milliseconds when the current window ends.
        retry_after_seconds: Whole seconds until ``reset_at``; only set on denial.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None = None


class AbstractRateLimiter(ABC):
    """Interface for admission controllers."""

    @abstractmethod
    def check(self, identifier: str, now: float | None = None) -> AdmissionResult:
        """Decide whether a new request for ``identifier`` may proceed.

        Args:
            identifier: Opaque caller key (e.g., client address).
            now: Current time in milliseconds. Read from the limiter's own
                clock when omitted.

        Returns:
            AdmissionResult with the decision and quota metadata.
        """
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | None]:
        """Return counters describing the limiter without exposing identifiers."""
        raise NotImplementedError
