"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → 400 (validation) or 403 (authentication)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from lifestream.core.errors import AppError, AuthenticationAppError
from lifestream.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, AuthenticationAppError):
        return 403
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error as ``{"error": {code, message, request_id, details?}}``.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)
    request_id = get_request_id()

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": request_id,
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors.

    Logs the failure with its type and returns a generic message; no
    exception text or traceback reaches the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register the domain and fallback exception handlers on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
