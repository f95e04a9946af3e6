"""Rate limiting for HTTP route handlers.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes wrap their handler, nothing else changes.
- Swap-friendly: storage backend sits behind ``AbstractRateLimiter``.
- No exceptions for throttling: an exhausted budget is an ordinary result
  that short-circuits into a 429 response.

Typical use with a limiter built at startup::

    @router.get("/v1/things")
    @rate_limited("api")
    async def list_things(request: Request) -> Response:
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import math
import time
from typing import Any, Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from apiguard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    KeyGenerator,
    RateLimitConfig,
    RateLimitResult,
)
from apiguard.core.client_ip import RequestLike, as_request_like, get_default_key
from apiguard.schemas.rate_limit import RateLimitErrorBody

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Response]]


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RateLimit:
    """A limiter bound to one configuration, callable on requests.

    The key generator is resolved once here; requests only pay for the key
    derivation and the limiter check.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        limiter: AbstractRateLimiter,
        *,
        name: str | None = None,
    ) -> None:
        self.config = config
        self.limiter = limiter
        self.name = name
        self._key_generator: KeyGenerator = config.key_generator or get_default_key

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"RateLimit(name={self.name!r}, window_ms={self.config.window_ms}, "
            f"max_requests={self.config.max_requests})"
        )

    def key_for(self, request: Request | RequestLike) -> str:
        return self._key_generator(as_request_like(request))

    def __call__(self, request: Request | RequestLike) -> RateLimitResult:
        key = self.key_for(request)
        result = self.limiter.check(key, self.config)

        log_extra = {
            "limiter": self.name,
            "key_hash": _hash_limiter_key(key),
            "limit": result.limit,
            "used": result.used,
            "remaining": result.remaining,
            "window_ms": self.config.window_ms,
        }
        if result.success:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning("rate_limit.exceeded", extra=log_extra)
        return result


def create_rate_limit(
    config: RateLimitConfig,
    limiter: AbstractRateLimiter,
    *,
    name: str | None = None,
) -> RateLimit:
    """Bind ``config`` to ``limiter``.

    Args:
        config: Window, budget and optional key generator.
        limiter: Storage backend; shared between callables only when their
            keys cannot collide.
        name: Optional label used in logs.

    Returns:
        RateLimit callable returning a RateLimitResult per request.
    """

    return RateLimit(config, limiter, name=name)


def retry_after_seconds(reset_time: int, now: int | None = None) -> int:
    """Whole seconds until ``reset_time`` (epoch ms), never negative."""

    if now is None:
        now = int(time.time() * 1000)
    return max(0, math.ceil((reset_time - now) / 1000))


def add_rate_limit_headers(response: Response, result: RateLimitResult) -> Response:
    """Set the ``X-RateLimit-*`` headers for ``result`` on ``response``."""

    for name, value in result.headers.items():
        response.headers[name] = value
    return response


def create_rate_limit_error_response(
    result: RateLimitResult,
    *,
    now: int | None = None,
) -> JSONResponse:
    """Build the 429 response for a rejected request.

    Args:
        result: The rejected check result.
        now: Current epoch milliseconds; defaults to the wall clock.

    Returns:
        JSONResponse with status 429, the rate limit headers and
        ``Retry-After``.
    """

    retry_after = retry_after_seconds(result.reset_time, now)
    body = RateLimitErrorBody(retry_after=retry_after)

    headers = dict(result.headers)
    headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True),
        headers=headers,
    )


async def _call_with_rate_limit(
    rate_limit: RateLimit,
    handler: Handler,
    request: Any,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> Response:
    result = rate_limit(request)
    if not result.success:
        # Retry-After must be measured on the clock that produced reset_time.
        return create_rate_limit_error_response(result, now=rate_limit.limiter.now_ms())

    response = await handler(request, *args, **kwargs)
    return add_rate_limit_headers(response, result)


def with_rate_limit(handler: Handler, rate_limit: RateLimit) -> Handler:
    """Wrap ``handler`` so it only runs while the budget allows it.

    The wrapper keeps the handler's signature (FastAPI resolves parameters
    through ``__wrapped__``). The handler's first parameter must be the
    request; remaining arguments pass through unchanged.

    Args:
        handler: Async handler ``(request, *args, **kwargs) -> Response``.
        rate_limit: Limiter callable built with ``create_rate_limit``.

    Returns:
        Async handler returning the 429 response without calling ``handler``
        when rejected, or the handler's response with rate limit headers.
    """

    @functools.wraps(handler)
    async def wrapper(request: Any, *args: Any, **kwargs: Any) -> Response:
        return await _call_with_rate_limit(rate_limit, handler, request, args, kwargs)

    return wrapper


def rate_limited(category: str) -> Callable[[Handler], Handler]:
    """Route decorator applying the named limiter from ``app.state``.

    The limiter registry is created at application startup and stored on
    ``request.app.state.rate_limiters``; it is looked up per call so routes
    can be declared before the registry exists.

    Args:
        category: Registry policy name (e.g., ``"api"``, ``"auth"``).

    Returns:
        Decorator for async handlers whose first parameter is a Starlette
        ``Request``.
    """

    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
            registry = request.app.state.rate_limiters
            if not registry.enabled:
                return await handler(request, *args, **kwargs)
            return await _call_with_rate_limit(registry[category], handler, request, args, kwargs)

        return wrapper

    return decorator
