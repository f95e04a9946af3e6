"""Predefined named rate limiters.

Each category gets its own limiter instance and prefixes keys with its name,
so one client exhausting ``auth`` leaves its ``billing`` budget untouched.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from apiguard.adapters.rate_limit.base import RateLimitConfig
from apiguard.adapters.rate_limit.in_memory import (
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    InMemoryRateLimiter,
)
from apiguard.core.client_ip import RequestLike, get_client_ip
from apiguard.core.errors import ConfigurationAppError
from apiguard.core.rate_limit import RateLimit, create_rate_limit

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class RateLimitPolicy:
    """Window and budget for one category of endpoints."""

    name: str
    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="policy name must be a non-empty string",
                details={"field": "name"},
            )
        # Raises ConfigurationAppError for a non-positive window or budget.
        RateLimitConfig(window_ms=self.window_ms, max_requests=self.max_requests)

    def key_for(self, request: RequestLike) -> str:
        return f"{self.name}:{get_client_ip(request)}"

    def to_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            window_ms=self.window_ms,
            max_requests=self.max_requests,
            key_generator=self.key_for,
        )


DEFAULT_POLICIES: tuple[RateLimitPolicy, ...] = (
    # Authentication endpoints - stricter limits
    RateLimitPolicy("auth", window_ms=15 * MINUTE_MS, max_requests=5),
    RateLimitPolicy("upload", window_ms=MINUTE_MS, max_requests=10),
    RateLimitPolicy("file-upload", window_ms=MINUTE_MS, max_requests=5),
    RateLimitPolicy("billing", window_ms=MINUTE_MS, max_requests=5),
    # Polled by the checkout return page
    RateLimitPolicy("payment-status", window_ms=MINUTE_MS, max_requests=20),
    RateLimitPolicy("api", window_ms=MINUTE_MS, max_requests=100),
)


class RateLimiterRegistry:
    """Owns one limiter per policy for the lifetime of the application.

    Build it once at startup, hand it to whatever serves requests, and call
    ``destroy()`` on shutdown to stop the sweeper threads.
    """

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy] = DEFAULT_POLICIES,
        *,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
        start_cleanup: bool = True,
    ) -> None:
        self.enabled = enabled
        self._policies: dict[str, RateLimitPolicy] = {}
        self._rate_limits: dict[str, RateLimit] = {}

        # Validate everything before any sweeper thread starts.
        for policy in policies:
            if policy.name in self._policies:
                raise ConfigurationAppError(
                    code="duplicate_rate_limit_policy",
                    message=f"Rate limit policy '{policy.name}' is defined twice",
                    details={"field": "name"},
                )
            self._policies[policy.name] = policy

        try:
            for policy in self._policies.values():
                limiter = InMemoryRateLimiter(
                    cleanup_interval_seconds=cleanup_interval_seconds,
                    clock=clock,
                    start_cleanup=start_cleanup,
                )
                self._rate_limits[policy.name] = create_rate_limit(
                    policy.to_config(), limiter, name=policy.name
                )
        except Exception:
            for rate_limit in self._rate_limits.values():
                rate_limit.limiter.destroy()
            raise

        logger.info(
            "rate_limit.registry_started",
            extra={"policies": sorted(self._policies), "enabled": enabled},
        )

    def __getitem__(self, name: str) -> RateLimit:
        try:
            return self._rate_limits[name]
        except KeyError:
            raise KeyError(f"Unknown rate limit policy: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._rate_limits

    def __iter__(self) -> Iterator[str]:
        return iter(self._rate_limits)

    def names(self) -> list[str]:
        return list(self._rate_limits)

    def policies(self) -> list[RateLimitPolicy]:
        return list(self._policies.values())

    def destroy(self) -> None:
        """Stop every limiter's sweeper and drop all counters."""
        for rate_limit in self._rate_limits.values():
            rate_limit.limiter.destroy()
        logger.info("rate_limit.registry_stopped", extra={"policies": sorted(self._policies)})
