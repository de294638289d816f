"""Worker process entry point.

Usage::

    python -m chatter_observatory.worker
    # or, once installed
    chatter-worker

SIGTERM and SIGINT request a clean stop: the job in progress (if any) is
finished before the process exits.
"""

from __future__ import annotations

import asyncio
import signal

import structlog
from prometheus_client import start_http_server

from chatter_observatory.config.settings import Settings, get_settings
from chatter_observatory.core.logging_config import configure_logging
from chatter_observatory.worker.loop import run_worker

logger = structlog.get_logger(__name__)


async def _serve(settings: Settings) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info(
        "worker_started",
        poll_interval=settings.job_poll_interval,
        proxy_base_url=settings.twitch_api_base_url,
    )
    await run_worker(settings, stop_event=stop_event)
    logger.info("worker_stopped")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, service="worker")
    if settings.worker_metrics_port:
        start_http_server(settings.worker_metrics_port)
    asyncio.run(_serve(settings))


if __name__ == "__main__":
    main()
