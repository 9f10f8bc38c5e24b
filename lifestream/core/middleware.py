"""HTTP middleware for request correlation and timing.

Every request gets a correlation id: the incoming ``X-Request-ID`` header
(name configurable via ``LOG_REQUEST_ID_HEADER``) or a fresh UUID. It is bound
to the logging context for the duration of the request and echoed back,
together with ``X-Request-Duration-ms``.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from lifestream.core.config import settings
from lifestream.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id to the context and annotate the response with it.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with request id and duration headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
