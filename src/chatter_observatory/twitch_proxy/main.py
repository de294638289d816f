"""FastAPI application factory for the Twitch API proxy.

The limiter, cache and Helix client are created per application instance and
stored on ``app.state``; routes reach them through dependencies.

Usage::

    uvicorn chatter_observatory.twitch_proxy.main:app --port 8081
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from fastapi import FastAPI

from chatter_observatory.config.settings import Settings, get_settings
from chatter_observatory.core.http import install_request_logging, mount_metrics_endpoint
from chatter_observatory.core.logging_config import configure_logging
from chatter_observatory.twitch_proxy.cache import TTLCache
from chatter_observatory.twitch_proxy.helix import HelixClient
from chatter_observatory.twitch_proxy.rate_limiter import TokenBucket

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and configure the proxy application.

    Args:
        settings: Explicit settings (tests); defaults to :func:`get_settings`.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, service="twitch_proxy")

    application = FastAPI(
        title=f"{settings.app_name} Twitch API proxy",
        version="0.1.0",
        debug=settings.debug,
        redirect_slashes=False,
    )

    application.state.settings = settings
    application.state.limiter = TokenBucket.per_minute(
        settings.rate_limit_requests_per_minute,
        burst=settings.rate_limit_burst,
    )
    application.state.cache = TTLCache()
    application.state.helix = HelixClient.from_settings(settings)

    install_request_logging(application, service="twitch_proxy")
    if settings.metrics_enabled:
        mount_metrics_endpoint(application)

    from chatter_observatory.twitch_proxy.routes import router  # noqa: PLC0415

    application.include_router(router)

    @application.on_event("startup")
    async def on_startup() -> None:
        """Check credentials and start the cache sweeper."""
        if not settings.twitch_client_id:
            raise RuntimeError("TWITCH_CLIENT_ID must be set for the Twitch API proxy")
        application.state.sweeper = asyncio.create_task(
            application.state.cache.run_sweeper(settings.cache_sweep_interval)
        )
        logger.info(
            "application_startup",
            requests_per_minute=settings.rate_limit_requests_per_minute,
            burst=settings.rate_limit_burst,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        sweeper: Optional[asyncio.Task] = getattr(application.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
        await application.state.helix.aclose()
        logger.info("application_shutdown")

    return application


app = create_app()
"""The ASGI callable passed to Uvicorn."""
