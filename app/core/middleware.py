"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id (accepted from the
client or generated) and the total handling duration. Context variables set
while handling the request, including the resolved tenant, are cleared once
the response is produced.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.exception_handlers import general_exception_handler
from app.core.logging import clear_request_id, set_request_id, set_tenant_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign a request id, time the request and echo both in the response.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with X-Request-ID and
            X-Request-Duration-ms headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            # Rendered here so the 500 keeps its correlation id
            response = await general_exception_handler(request, exc)
    finally:
        clear_request_id()
        set_tenant_id(None)

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
