"""Durable job queue operations on the ``jobs`` table.

Producers (the gateway and chained handlers) call :func:`enqueue_job` inside
their own transaction.  Consumers (worker processes) call
:func:`claim_next_job`, run the job body outside any transaction, then call
:func:`finish_job`.

Claiming locks the oldest pending row with ``FOR UPDATE SKIP LOCKED`` so any
number of worker processes can poll concurrently: a row locked by one
claimant is invisible to the others instead of blocking them.  The
transition to ``running`` is committed immediately, so the row lock is held
only for the claim itself and never across the network-bound job body.

The claim ``UPDATE`` is additionally conditioned on ``status = 'pending'``.
On PostgreSQL the row lock already guarantees exclusivity; on engines that
ignore ``FOR UPDATE`` (SQLite, used by the test suite) the condition is what
keeps two claimants from both winning the same row.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatter_observatory.core.models.base import utcnow
from chatter_observatory.core.models.jobs import Job, JobStatus

logger = structlog.get_logger(__name__)

_MAX_ERROR_LENGTH = 2000
_STALE_JOB_MESSAGE = "job lease expired: worker stopped before finishing it"


async def enqueue_job(db: AsyncSession, job_type: str, payload: dict[str, Any]) -> Job:
    """Insert a ``pending`` job in the caller's transaction.

    The caller commits.  The returned job has its primary key populated.
    """
    job = Job(type=job_type, payload=payload, status=JobStatus.PENDING)
    db.add(job)
    await db.flush()
    logger.info("job_enqueued", job_id=job.id, job_type=job_type)
    return job


async def claim_next_job(
    session_factory: async_sessionmaker[AsyncSession],
) -> Optional[Job]:
    """Claim the oldest pending job, or return ``None`` if there is none.

    Args:
        session_factory: Factory for the short claim transaction.

    Returns:
        The claimed job, already committed as ``running`` with ``started_at``
        set, detached from its session.  ``None`` when no pending row could
        be claimed during this call.
    """
    async with session_factory() as session:
        async with session.begin():
            stmt = (
                sa.select(Job)
                .where(Job.status == JobStatus.PENDING)
                .order_by(Job.created_at.asc(), Job.id.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            job = (await session.execute(stmt)).scalar_one_or_none()
            if job is None:
                return None

            started_at = utcnow()
            result = await session.execute(
                sa.update(Job)
                .where(Job.id == job.id, Job.status == JobStatus.PENDING)
                .values(status=JobStatus.RUNNING, started_at=started_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Another claimant committed first.
                return None

        job.status = JobStatus.RUNNING
        job.started_at = started_at
        return job


async def finish_job(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: int,
    error: Optional[str] = None,
) -> bool:
    """Move a ``running`` job to ``done`` (no error) or ``failed``.

    Only rows still in ``running`` are touched, so a job failed by the stale
    sweep is never resurrected by a late finisher.

    Args:
        session_factory: Factory for the update transaction.
        job_id: Primary key of the claimed job.
        error: Failure description; ``None`` marks the job ``done``.

    Returns:
        ``True`` if the row was updated.
    """
    status = JobStatus.DONE if error is None else JobStatus.FAILED
    message = error[:_MAX_ERROR_LENGTH] if error is not None else None
    async with session_factory() as session:
        async with session.begin():
            result = await session.execute(
                sa.update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.RUNNING)
                .values(status=status, finished_at=utcnow(), error_message=message)
                .execution_options(synchronize_session=False)
            )
    updated = result.rowcount == 1
    if not updated:
        logger.warning("job_finish_skipped", job_id=job_id, status=status)
    return updated


async def reclaim_stale_jobs(
    session_factory: async_sessionmaker[AsyncSession],
    older_than: timedelta,
) -> int:
    """Fail jobs that have been ``running`` for longer than ``older_than``.

    A worker that dies between the claim commit and :func:`finish_job` would
    otherwise leave its job in ``running`` forever.  Reclaimed jobs are
    failed, not re-queued: failures stay terminal.

    Returns:
        Number of jobs failed by this sweep.
    """
    now = utcnow()
    async with session_factory() as session:
        async with session.begin():
            result = await session.execute(
                sa.update(Job)
                .where(
                    Job.status == JobStatus.RUNNING,
                    Job.started_at < now - older_than,
                )
                .values(
                    status=JobStatus.FAILED,
                    finished_at=now,
                    error_message=_STALE_JOB_MESSAGE,
                )
                .execution_options(synchronize_session=False)
            )
    reclaimed = result.rowcount or 0
    if reclaimed:
        logger.warning("stale_jobs_reclaimed", count=reclaimed)
    return reclaimed
