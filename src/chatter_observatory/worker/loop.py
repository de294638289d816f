"""Polling loop of the worker process.

One tick claims at most one job, runs it, and records the outcome.  Ticks
repeat every ``job_poll_interval`` seconds until the stop event is set.
Horizontal scaling is done by running more worker processes; they only
coordinate through the row lock taken in
:func:`~chatter_observatory.worker.queue.claim_next_job`.

No job is retried: a handler exception, an unknown job type or a timeout
marks the job ``failed`` with a message, and the loop moves on.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.exceptions import UnknownJobTypeError
from chatter_observatory.core.metrics import (
    job_duration_seconds,
    jobs_processed_total,
    jobs_reclaimed_total,
)
from chatter_observatory.core.models.jobs import JobStatus
from chatter_observatory.worker.handlers import HANDLERS, JobContext, JobHandler
from chatter_observatory.worker.proxy_client import TwitchProxyClient
from chatter_observatory.worker.queue import claim_next_job, finish_job, reclaim_stale_jobs

logger = structlog.get_logger(__name__)


async def process_one_job(
    ctx: JobContext,
    *,
    timeout: float,
    handlers: Optional[dict[str, JobHandler]] = None,
) -> bool:
    """Claim and run a single job.

    Args:
        ctx: Handler dependencies.
        timeout: Upper bound in seconds on the handler body.
        handlers: Dispatch table; defaults to :data:`HANDLERS`.

    Returns:
        ``True`` if a job was claimed (whatever its outcome), ``False`` if the
        queue had nothing to hand out.
    """
    dispatch = HANDLERS if handlers is None else handlers
    job = await claim_next_job(ctx.session_factory)
    if job is None:
        return False

    structlog.contextvars.bind_contextvars(job_id=job.id, job_type=job.type)
    logger.info("job_claimed")
    start = time.perf_counter()
    error: Optional[str] = None
    try:
        handler = dispatch.get(job.type)
        if handler is None:
            raise UnknownJobTypeError(job.type, job_id=job.id)
        await asyncio.wait_for(handler(job, ctx), timeout=timeout)
    except asyncio.TimeoutError:
        error = f"job timed out after {timeout:g}s"
    except Exception as exc:
        error = str(exc) or type(exc).__name__

    elapsed = time.perf_counter() - start
    try:
        await finish_job(ctx.session_factory, job.id, error)
    finally:
        status = JobStatus.DONE if error is None else JobStatus.FAILED
        jobs_processed_total.labels(type=job.type, status=status).inc()
        job_duration_seconds.labels(type=job.type).observe(elapsed)
        if error is None:
            logger.info("job_done", elapsed_ms=round(elapsed * 1000, 2))
        else:
            logger.warning("job_failed", error=error, elapsed_ms=round(elapsed * 1000, 2))
        structlog.contextvars.unbind_contextvars("job_id", "job_type")
    return True


async def run_worker(
    settings: Settings,
    *,
    stop_event: Optional[asyncio.Event] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    proxy: Optional[TwitchProxyClient] = None,
) -> None:
    """Run the polling loop until ``stop_event`` is set.

    Errors raised outside a job body (database unreachable during the claim,
    for instance) are logged and the loop keeps polling.

    Args:
        settings: Worker configuration.
        stop_event: Set to request a clean stop between two ticks.
        session_factory: Defaults to the process-wide ``AsyncSessionLocal``.
        proxy: Defaults to a client built from ``settings``.
    """
    if session_factory is None:
        from chatter_observatory.core.database import AsyncSessionLocal  # noqa: PLC0415

        session_factory = AsyncSessionLocal
    stop_event = stop_event or asyncio.Event()
    proxy = proxy or TwitchProxyClient.from_settings(settings)
    ctx = JobContext(session_factory=session_factory, proxy=proxy)

    stale_after = timedelta(seconds=settings.stale_job_after_seconds)
    last_sweep: float | None = None

    try:
        while not stop_event.is_set():
            if settings.stale_job_after_seconds > 0 and (
                last_sweep is None
                or time.monotonic() - last_sweep >= settings.stale_job_sweep_interval
            ):
                last_sweep = time.monotonic()
                try:
                    reclaimed = await reclaim_stale_jobs(session_factory, stale_after)
                    jobs_reclaimed_total.inc(reclaimed)
                except Exception:
                    logger.exception("stale_job_sweep_failed")

            try:
                await process_one_job(ctx, timeout=settings.job_timeout_seconds)
            except Exception:
                logger.exception("worker_tick_failed")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.job_poll_interval)
            except asyncio.TimeoutError:
                pass
    finally:
        await proxy.aclose()
