"""Global exception handlers for consistent error responses.

- AppError subclasses map to an HTTP status (404 for unknown resources,
  500 for misconfiguration, 400 otherwise).
- Anything else falls through to a generic 500.
- Responses carry the request_id for tracing and never include tracebacks.

Throttled requests do not pass through here: the rate limiter returns its
429 response directly.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from apiguard.core.errors import AppError, ConfigurationAppError, NotFoundAppError
from apiguard.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, ConfigurationAppError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, NotFoundAppError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": {code, message, request_id, details?}}``.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    # Configuration details describe server internals
    if exc.details and status_code < 500:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure with request context and returns a generic message.
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
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register the AppError handler and the catch-all fallback on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
