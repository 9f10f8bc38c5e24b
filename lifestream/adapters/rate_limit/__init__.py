"""Rate limiting adapters.

Routes and dependencies talk to ``AbstractRateLimiter`` only, so the
in-process fixed-window limiter can later be replaced by a shared store
(e.g., Redis) without touching the HTTP layer.
"""

from lifestream.adapters.rate_limit.base import AbstractRateLimiter, AdmissionResult
from lifestream.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "AdmissionResult",
    "InMemoryFixedWindowRateLimiter",
]
