"""Rate limiter interfaces and value types.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the in-memory store can be swapped for a shared one (e.g., Redis) later.
Times are UNIX epoch milliseconds throughout.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apiguard.core.errors import ConfigurationAppError

KeyGenerator = Callable[[Any], str]


def format_reset_time(reset_time: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string (``...000Z``)."""

    seconds, millis = divmod(reset_time, 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class RateLimitConfig:
    """Immutable limiter configuration.

    Attributes:
        window_ms: Window duration in milliseconds.
        max_requests: Maximum allowed requests per window.
        key_generator: Optional function deriving the bucket key from a
            request. When omitted, the HTTP layer falls back to
            ``"<clientIP>:<path>"``.

    Raises:
        ConfigurationAppError: If window_ms or max_requests is not positive.
    """

    window_ms: int
    max_requests: int
    key_generator: KeyGenerator | None = None

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="window_ms must be > 0",
                details={"field": "window_ms", "actual_value": self.window_ms, "min_value": 1},
            )
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="max_requests must be > 0",
                details={"field": "max_requests", "actual_value": self.max_requests, "min_value": 1},
            )


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        success: Whether the request is allowed to proceed.
        limit: Max requests per window.
        used: Requests counted in the current window.
        remaining: Requests left in the current window (0 when blocked).
        reset_time: Epoch milliseconds when the current window resets.
    """

    success: bool
    limit: int
    used: int
    remaining: int
    reset_time: int

    @property
    def headers(self) -> dict[str, str]:
        """Bookkeeping headers describing this result."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": format_reset_time(self.reset_time),
        }


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count a request for ``key`` and decide whether it is allowed.

        Args:
            key: Bucket key (e.g., ``"auth:203.0.113.5"``).
            config: Window and budget to apply.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def now_ms(self) -> int:
        """Current time in epoch milliseconds, as used for ``reset_time``."""
        raise NotImplementedError

    @abstractmethod
    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def destroy(self) -> None:
        """Release background resources and forget all state."""
        raise NotImplementedError
