"""HTTP plumbing shared by the gateway, analysis and proxy FastAPI apps.

Each app factory calls :func:`install_request_logging` and
:func:`mount_metrics_endpoint` so the three services log and report requests
identically.
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response

from chatter_observatory.core.logging_config import request_id_var
from chatter_observatory.core.metrics import (
    get_metrics_response,
    http_request_duration_seconds,
    http_requests_total,
)

logger = structlog.get_logger(__name__)


def _route_path(request: Request) -> str:
    """Return the route template (``/sessions/{session_uuid}/summary``) when matched.

    Using the template instead of the raw path keeps the metric label
    cardinality bounded.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or "unmatched"


def install_request_logging(application: FastAPI, service: str) -> None:
    """Register the request-logging middleware on ``application``.

    Attaches a unique ``request_id`` to the structlog context, echoes it in
    the ``X-Request-ID`` response header (or reuses an inbound one), and
    records the HTTP request metrics.

    Args:
        application: The FastAPI app being built.
        service: Service name used as the ``service`` metric label.
    """

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            path = _route_path(request)
            http_requests_total.labels(
                service=service,
                method=request.method,
                path=path,
                status=str(status_code),
            ).inc()
            http_request_duration_seconds.labels(
                service=service, method=request.method, path=path
            ).observe(elapsed)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )

        response.headers["X-Request-ID"] = request_id
        return response


def mount_metrics_endpoint(application: FastAPI) -> None:
    """Expose the process-wide Prometheus registry at ``GET /metrics``."""

    @application.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        body, content_type = get_metrics_response()
        return Response(content=body, media_type=content_type)
