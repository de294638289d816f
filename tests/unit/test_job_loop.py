"""Unit tests for the worker polling loop.

Tests cover:
- process_one_job() returns False on an empty queue
- a handler that returns normally leaves the job ``done``
- a handler exception leaves the job ``failed`` with the exception message
- an unknown job type fails the job with ``unknown job type: <type>``
- a handler exceeding the timeout fails the job with a timeout message
- a FETCH_CHATTERS job run through the real handler ends ``done`` next to a
  pending FETCH_USERS_INFO job, with the capture and its chatter rows stored
- run_worker() exits promptly once the stop event is set

Most handlers are replaced by AsyncMock / small coroutines; the capture
scenario runs the real handler against a respx-mocked proxy.  The queue runs
against the SQLite test database.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
import sqlalchemy as sa

from chatter_observatory.config.settings import get_settings
from chatter_observatory.core.models import (
    AnalysisSession,
    Capture,
    CaptureChatter,
    Job,
    JobStatus,
    JobType,
    SessionStatus,
)
from chatter_observatory.worker.handlers import JobContext
from chatter_observatory.worker.loop import process_one_job, run_worker
from chatter_observatory.worker.proxy_client import TwitchProxyClient
from chatter_observatory.worker.queue import enqueue_job
from tests.factories.jobs import FetchChattersPayloadFactory
from tests.factories.twitch import ChatterFactory

_PROXY = "http://proxy.test"


async def _enqueue(session_factory, job_type: str = JobType.FETCH_CHATTERS) -> int:
    async with session_factory() as session:
        job = await enqueue_job(session, job_type, FetchChattersPayloadFactory.build())
        await session.commit()
        return job.id


async def _load(session_factory, job_id: int) -> Job:
    async with session_factory() as session:
        return (await session.execute(sa.select(Job).where(Job.id == job_id))).scalar_one()


def _make_ctx(session_factory) -> JobContext:
    return JobContext(session_factory=session_factory, proxy=AsyncMock())


class TestProcessOneJob:
    @pytest.mark.asyncio
    async def test_empty_queue_returns_false(self, session_factory) -> None:
        assert await process_one_job(_make_ctx(session_factory), timeout=5) is False

    @pytest.mark.asyncio
    async def test_successful_handler_marks_done(self, session_factory) -> None:
        job_id = await _enqueue(session_factory)
        handler = AsyncMock(return_value=None)
        ctx = _make_ctx(session_factory)

        processed = await process_one_job(
            ctx, timeout=5, handlers={JobType.FETCH_CHATTERS: handler}
        )

        assert processed is True
        handler.assert_awaited_once()
        claimed_job, passed_ctx = handler.await_args.args
        assert claimed_job.id == job_id
        assert passed_ctx is ctx
        assert (await _load(session_factory, job_id)).status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_handler_exception_marks_failed(self, session_factory) -> None:
        job_id = await _enqueue(session_factory)
        handler = AsyncMock(side_effect=RuntimeError("proxy returned 500"))

        await process_one_job(
            _make_ctx(session_factory), timeout=5, handlers={JobType.FETCH_CHATTERS: handler}
        )

        job = await _load(session_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "proxy returned 500"

    @pytest.mark.asyncio
    async def test_unknown_type_marks_failed(self, session_factory) -> None:
        job_id = await _enqueue(session_factory, job_type="REFRESH_EVERYTHING")

        processed = await process_one_job(_make_ctx(session_factory), timeout=5)

        assert processed is True
        job = await _load(session_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "unknown job type: REFRESH_EVERYTHING"

    @pytest.mark.asyncio
    async def test_timeout_marks_failed(self, session_factory) -> None:
        job_id = await _enqueue(session_factory)

        async def _slow(job, ctx) -> None:
            await asyncio.sleep(10)

        await process_one_job(
            _make_ctx(session_factory), timeout=0.05, handlers={JobType.FETCH_CHATTERS: _slow}
        )

        job = await _load(session_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "job timed out after 0.05s"


class TestCaptureThroughLoop:
    @pytest.mark.asyncio
    async def test_capture_job_done_and_users_job_chained(
        self, session_factory, seeded_user
    ) -> None:
        """Two chatter pages with a repeated ID end as one capture of three chatters."""
        async with session_factory() as session:
            analysis = AnalysisSession(
                session_uuid="e" * 32, user_id=seeded_user.id, status=SessionStatus.ACTIVE
            )
            session.add(analysis)
            await session.commit()
            session_id = analysis.id
        async with session_factory() as session:
            job = await enqueue_job(
                session,
                JobType.FETCH_CHATTERS,
                FetchChattersPayloadFactory.build(
                    session_id=session_id,
                    broadcaster_id="42",
                    twitch_user_id=seeded_user.twitch_user_id,
                ),
            )
            await session.commit()
            capture_job_id = job.id

        proxy = TwitchProxyClient(
            httpx.AsyncClient(base_url=_PROXY),
            rate_limit_sleep=0.0,
            page_delay=0.0,
            users_batch_delay=0.0,
        )
        pages = [
            {
                "data": [ChatterFactory.build(user_id="1"), ChatterFactory.build(user_id="2")],
                "pagination": {"cursor": "next"},
            },
            {
                "data": [ChatterFactory.build(user_id="3"), ChatterFactory.build(user_id="1")],
                "pagination": {},
            },
        ]
        with respx.mock() as mock:
            mock.get(f"{_PROXY}/chatters").mock(
                side_effect=[httpx.Response(200, json=page) for page in pages]
            )
            processed = await process_one_job(
                JobContext(session_factory=session_factory, proxy=proxy), timeout=5
            )
        await proxy.aclose()

        assert processed is True
        async with session_factory() as session:
            jobs = list((await session.execute(sa.select(Job).order_by(Job.id))).scalars())
            captures = list((await session.execute(sa.select(Capture))).scalars())
            chatter_rows = (
                await session.execute(sa.select(sa.func.count()).select_from(CaptureChatter))
            ).scalar_one()

        assert [(job.id, job.type, job.status) for job in jobs] == [
            (capture_job_id, JobType.FETCH_CHATTERS, JobStatus.DONE),
            (jobs[1].id, JobType.FETCH_USERS_INFO, JobStatus.PENDING),
        ]
        assert jobs[0].error_message is None
        assert jobs[1].payload["user_ids"] == ["1", "2", "3"]
        assert [capture.chatters_count for capture in captures] == [3]
        assert chatter_rows == 3


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_stop_event_ends_loop_and_closes_proxy(self, session_factory) -> None:
        """A pre-set stop event makes the loop return without claiming anything."""
        job_id = await _enqueue(session_factory)
        stop_event = asyncio.Event()
        stop_event.set()
        proxy = AsyncMock()

        await asyncio.wait_for(
            run_worker(
                get_settings(),
                stop_event=stop_event,
                session_factory=session_factory,
                proxy=proxy,
            ),
            timeout=5,
        )

        proxy.aclose.assert_awaited_once()
        assert (await _load(session_factory, job_id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_loop_processes_jobs_until_stopped(self, session_factory) -> None:
        job_id = await _enqueue(session_factory)
        stop_event = asyncio.Event()
        settings = get_settings().model_copy(update={"job_poll_interval": 0.01})
        proxy = AsyncMock()

        async def _stop_when_done() -> None:
            while (await _load(session_factory, job_id)).status in (
                JobStatus.PENDING,
                JobStatus.RUNNING,
            ):
                await asyncio.sleep(0.01)
            stop_event.set()

        await asyncio.wait_for(
            asyncio.gather(
                run_worker(
                    settings,
                    stop_event=stop_event,
                    session_factory=session_factory,
                    proxy=proxy,
                ),
                _stop_when_done(),
            ),
            timeout=10,
        )

        # The real handler fails: no web session exists for the payload's session.
        job = await _load(session_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert "no valid access token" in job.error_message
