"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the rate limiter lifecycle: the registry is built when the app starts,
exposed on ``app.state.rate_limiters`` and destroyed on shutdown.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from apiguard.api.routes import health_router, rate_limits_router
from apiguard.core.config import Settings, settings as default_settings
from apiguard.core.exception_handlers import setup_exception_handlers
from apiguard.core.logging import configure_logging
from apiguard.core.middleware import request_id_middleware
from apiguard.core.openapi import apply_openapi_customizations
from apiguard.core.rate_limiters import RateLimiterRegistry

RegistryFactory = Callable[[Settings], RateLimiterRegistry]


def build_rate_limiter_registry(settings: Settings) -> RateLimiterRegistry:
    """Default registry: the predefined policies with configured sweeping."""
    return RateLimiterRegistry(
        cleanup_interval_seconds=settings.rate_limit.cleanup_interval_seconds,
        enabled=settings.rate_limit.enabled,
    )


def create_app(
    settings: Settings | None = None,
    *,
    registry_factory: RegistryFactory = build_rate_limiter_registry,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-loaded ones.
        registry_factory: Builds the limiter registry at startup. Tests pass
            one with a fake clock or small budgets.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry = registry_factory(cfg)
        app.state.rate_limiters = registry
        try:
            yield
        finally:
            registry.destroy()

    app = FastAPI(
        title=cfg.app.name,
        description=(
            "In-process rate limiting for HTTP APIs: fixed-window counters per "
            "client and category, X-RateLimit-* headers and structured 429 "
            "responses."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (429 contract, tags)
    apply_openapi_customizations(app)

    return app
