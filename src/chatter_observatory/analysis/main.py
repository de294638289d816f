"""FastAPI application factory for the analysis service.

Usage::

    uvicorn chatter_observatory.analysis.main:app --port 8083
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI

from chatter_observatory.config.settings import Settings, get_settings
from chatter_observatory.core.http import install_request_logging, mount_metrics_endpoint
from chatter_observatory.core.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the read-only analysis application.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, service="analysis")

    application = FastAPI(
        title=f"{settings.app_name} analysis",
        version="0.1.0",
        debug=settings.debug,
        redirect_slashes=False,
    )
    application.state.settings = settings

    install_request_logging(application, service="analysis")
    if settings.metrics_enabled:
        mount_metrics_endpoint(application)

    from chatter_observatory.analysis.routes import router  # noqa: PLC0415

    application.include_router(router)

    @application.on_event("startup")
    async def on_startup() -> None:
        logger.info("application_startup", app_name=settings.app_name)

    return application


app = create_app()
"""The ASGI callable passed to Uvicorn."""
