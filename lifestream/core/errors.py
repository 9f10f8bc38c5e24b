"""Application-level exception types.

Domain errors shared by adapters and the HTTP layer so that failures are
logged and rendered with one consistent shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    limit: int
    remaining: int
    reset_at: float
    retry_after: float
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidIdentifierError(ValidationAppError):
    """Raised when a rate limit identifier is empty or not a string."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""
