"""Request ID middleware.

Every response carries a request ID so a throttled client can quote it and
the matching ``rate_limit.exceeded`` log event can be found.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from apiguard.core.config import settings
from apiguard.core.logging import clear_request_id, set_request_id

MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request, header_name: str) -> str | None:
    """Client-supplied ID, or None when it is unsafe to log."""
    value = (request.headers.get(header_name) or "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request ID to the logging context and echo it on the response.

    A well-formed incoming ID (header ``LOG_REQUEST_ID_HEADER``) is reused;
    anything else is replaced by a fresh UUID4. ``X-Request-Duration-ms``
    reports the handling time, 429 responses included.
    """

    header_name = settings.log.request_id_header
    request_id = _incoming_request_id(request, header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers["X-Request-Duration-ms"] = f"{(time.perf_counter() - started) * 1000:.2f}"
    return response
