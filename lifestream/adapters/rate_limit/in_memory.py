"""In-memory fixed-window admission controller.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every check-then-increment runs under a single lock.
- A window resets on the first check after it expired, not on a wall-clock
  grid, so up to ``2 * max_requests`` admissions can land around a boundary.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from lifestream.adapters.rate_limit.base import AbstractRateLimiter, AdmissionResult
from lifestream.core.errors import InvalidIdentifierError

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_MS = 60_000


def wall_clock_ms() -> float:
    """Current UNIX time in milliseconds."""
    return time.time() * 1000.0


@dataclass
class WindowRecord:
    """Per-identifier counting state for the current window."""

    count: int
    window_start: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Admission controller counting requests per identifier in a fixed window.

    Each identifier gets a ``WindowRecord`` on first sight. A check admits the
    request while ``count < max_requests`` and increments the counter; once the
    quota is used up, checks are denied without touching the record until more
    than ``window_ms`` has elapsed since ``window_start``.

    The registry is owned by the instance, so independent limiters (and tests)
    never share state. It can be bounded two ways:

    - ``sweep_interval_ms``: on a check, if at least this long has passed since
      the previous sweep, records whose window has expired are dropped.
    - ``max_identifiers``: least recently checked identifiers are evicted when
      the registry would grow past this size. An evicted identifier starts
      over with a fresh window on its next check.

    Important:
        This limiter is per-process only. Behind several Uvicorn/Gunicorn
        workers each worker enforces its own independent limit.
    """

    def __init__(
        self,
        *,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: float = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] = wall_clock_ms,
        max_identifiers: int | None = None,
        sweep_interval_ms: float | None = None,
    ) -> None:
        """Initialize the admission controller.

        Args:
            max_requests: Maximum admitted requests per window.
            window_ms: Length of the counting window in milliseconds.
            clock: Time source returning milliseconds. Used when ``check``
                is called without an explicit ``now``.
            max_identifiers: Optional upper bound on tracked identifiers.
            sweep_interval_ms: Optional period between expired-record sweeps.

        Raises:
            ValueError: If any bound is not positive.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if max_identifiers is not None and max_identifiers < 1:
            raise ValueError("max_identifiers must be >= 1 or None")
        if sweep_interval_ms is not None and sweep_interval_ms <= 0:
            raise ValueError("sweep_interval_ms must be > 0 or None")

        self._max_requests = max_requests
        self._window_ms = window_ms
        self._clock = clock
        self._max_identifiers = max_identifiers
        self._sweep_interval_ms = sweep_interval_ms

        self._lock = threading.RLock()
        self._records: OrderedDict[str, WindowRecord] = OrderedDict()
        self._last_sweep: float | None = None
        self._checks = 0
        self._denials = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryFixedWindowRateLimiter(max_requests={self._max_requests}, "
            f"window_ms={self._window_ms}, identifiers={len(self._records)})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> float:
        return self._window_ms

    def check(self, identifier: str, now: float | None = None) -> AdmissionResult:
        """Check and, when admitted, count a request for ``identifier``.

        A ``now`` earlier than the stored window start is treated as still
        inside the window.

        Args:
            identifier: Opaque caller key; must be a non-empty string.
            now: Current time in milliseconds (defaults to the clock).

        Returns:
            AdmissionResult with the decision and quota metadata.

        Raises:
            InvalidIdentifierError: If identifier is empty or not a string.
        """
        if not isinstance(identifier, str) or not identifier:
            raise InvalidIdentifierError(
                code="invalid_identifier",
                message="identifier must be a non-empty string",
            )

        if now is None:
            now = self._clock()

        with self._lock:
            self._checks += 1
            self._maybe_sweep_locked(now)
            record = self._get_or_create_locked(identifier, now)

            if now < record.window_start:
                logger.debug(
                    "rate_limit.clock_skew",
                    extra={"skew_ms": record.window_start - now},
                )
            if self._elapsed(record, now) > self._window_ms:
                record.count = 0
                record.window_start = now

            reset_at = record.window_start + self._window_ms

            if record.count >= self._max_requests:
                self._denials += 1
                return self._build_denied_result(now=now, reset_at=reset_at)

            record.count += 1
            return self._build_allowed_result(
                remaining=self._max_requests - record.count,
                reset_at=reset_at,
            )

    def sweep(self, now: float | None = None) -> int:
        """Drop every record whose window has expired.

        Args:
            now: Current time in milliseconds (defaults to the clock).

        Returns:
            Number of records removed.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            removed = self._sweep_locked(now)
            self._last_sweep = now
            return removed

    def reset(self, identifier: str | None = None) -> None:
        """Forget one identifier, or every identifier when none is given."""

        with self._lock:
            if identifier is None:
                self._records.clear()
            else:
                self._records.pop(identifier, None)

    def stats(self) -> dict[str, int | None]:
        """Return lightweight limiter metrics without exposing identifiers."""

        with self._lock:
            return {
                "limit": self._max_requests,
                "window_ms": int(self._window_ms),
                "identifiers": len(self._records),
                "max_identifiers": self._max_identifiers,
                "checks": self._checks,
                "denials": self._denials,
                "evictions": self._evictions,
            }

    @staticmethod
    def _elapsed(record: WindowRecord, now: float) -> float:
        return max(0.0, now - record.window_start)

    def _get_or_create_locked(self, identifier: str, now: float) -> WindowRecord:
        record = self._records.get(identifier)
        if record is not None:
            self._records.move_to_end(identifier)
            return record

        record = WindowRecord(count=0, window_start=now)
        self._records[identifier] = record
        self._evict_if_over_capacity_locked()
        return record

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_identifiers is None:
            return

        while len(self._records) > self._max_identifiers:
            # oldest entry is the least recently checked identifier
            self._records.popitem(last=False)
            self._evictions += 1

    def _maybe_sweep_locked(self, now: float) -> None:
        if self._sweep_interval_ms is None:
            return
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep >= self._sweep_interval_ms:
            self._sweep_locked(now)
            self._last_sweep = now

    def _sweep_locked(self, now: float) -> int:
        expired = [
            key
            for key, record in self._records.items()
            if self._elapsed(record, now) > self._window_ms
        ]
        for key in expired:
            del self._records[key]
        self._evictions += len(expired)

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": len(expired), "identifiers": len(self._records)},
            )
        return len(expired)

    def _build_allowed_result(self, *, remaining: int, reset_at: float) -> AdmissionResult:
        return AdmissionResult(
            allowed=True,
            limit=self._max_requests,
            remaining=remaining,
            reset_at=reset_at,
        )

    def _build_denied_result(self, *, now: float, reset_at: float) -> AdmissionResult:
        retry_after = max(0, int(math.ceil((reset_at - now) / 1000.0)))
        return AdmissionResult(
            allowed=False,
            limit=self._max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )
