"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so admission decisions
logged by the rate limit service can be correlated with the HTTP exchange
that triggered them.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from quotaguard.core.logging import clear_request_id, set_request_id

DURATION_HEADER = "X-Request-Duration-ms"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Reuse or generate a request ID and echo it back.

    The incoming header named by ``LOG_REQUEST_ID_HEADER`` in the app's
    settings is honoured when present, otherwise a UUID4 is generated. The ID
    lives in contextvars for the duration of the request and is cleared
    afterwards.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with request ID and duration headers.
    """
    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault(DURATION_HEADER, f"{(time.perf_counter() - start) * 1000:.2f}")
    return response
