"""FastAPI application factory for the gateway.

Creates the application, registers middleware, mounts the page and action
routers, configures the Jinja2 template engine and the slowapi limiter.

Usage::

    uvicorn chatter_observatory.gateway.main:app --port 8080
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from chatter_observatory.config.settings import Settings, get_settings
from chatter_observatory.core.http import install_request_logging, mount_metrics_endpoint
from chatter_observatory.core.logging_config import configure_logging
from chatter_observatory.gateway.analysis_client import AnalysisClient
from chatter_observatory.gateway.channels import ChannelsClient
from chatter_observatory.gateway.dependencies import LoginRequired
from chatter_observatory.gateway.limiter import limiter
from chatter_observatory.gateway.twitch_oauth import TwitchOAuthClient

logger = structlog.get_logger(__name__)

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and configure the gateway application.

    Args:
        settings: Explicit settings (tests); defaults to :func:`get_settings`.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, service="gateway")

    application = FastAPI(
        title=settings.app_name,
        description="Capture and analyse the chatters of Twitch channels.",
        version="0.1.0",
        debug=settings.debug,
        redirect_slashes=False,
    )

    application.state.settings = settings
    application.state.templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))
    application.state.oauth = TwitchOAuthClient.from_settings(settings)
    application.state.analysis = AnalysisClient.from_settings(settings)
    application.state.channels = ChannelsClient.from_settings(settings)
    application.state.limiter = limiter

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_request_logging(application, service="gateway")
    if settings.metrics_enabled:
        mount_metrics_endpoint(application)

    # ---- Exception handlers -----------------------------------------------

    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @application.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
        return RedirectResponse("/auth/login", status_code=302)

    # ---- Routers ------------------------------------------------------------

    from chatter_observatory.gateway.routes import (  # noqa: PLC0415
        analysis,
        auth,
        exports,
        health as health_routes,
        pages,
        sessions,
    )

    application.include_router(health_routes.router)
    application.include_router(auth.router)
    application.include_router(exports.router)
    application.include_router(sessions.router)
    application.include_router(analysis.router)
    application.include_router(pages.router)

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    async def on_startup() -> None:
        if not settings.twitch_client_id:
            logger.warning("twitch_client_id_missing")
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        await application.state.oauth.aclose()
        await application.state.analysis.aclose()
        await application.state.channels.aclose()
        logger.info("application_shutdown")

    @application.get("/health", tags=["system"])
    async def health() -> JSONResponse:
        """Process-level liveness; performs no I/O."""
        return JSONResponse({"status": "ok"})

    return application


app = create_app()
"""The ASGI callable passed to Uvicorn."""
