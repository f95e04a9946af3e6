"""Application-level exception types.

This module defines domain errors used across the limiter, the HTTP seam and
the service shell, enabling consistent error handling, logging, and API
responses.

Note that an exhausted rate limit is not an error: it is reported as a
``RateLimitResult`` with ``success=False``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    actual_value: int
    min_value: int
    http_status: int
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


class NotFoundAppError(AppError):
    """Raised when a requested resource (e.g., a policy name) does not exist."""


class ConfigurationAppError(AppError):
    """Raised when a limiter or policy is built with invalid settings."""
