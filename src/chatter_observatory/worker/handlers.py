"""Job handlers for the worker.

Each handler receives the claimed :class:`Job` and a :class:`JobContext` and
either returns normally (the job becomes ``done``) or raises (the job becomes
``failed`` with the exception message).  Handlers open their own short
transactions; none is held while the proxy is being called.

``FETCH_CHATTERS``
    Reads the full chatter list of a channel, stores a capture with one row
    per chatter and, when at least one chatter was seen, chains exactly one
    ``FETCH_USERS_INFO`` job for those IDs.

``FETCH_USERS_INFO``
    Fetches Helix identities in batches and upserts ``twitch_users``.  When
    an existing user's login or display name changed, one
    ``twitch_user_names`` row is appended.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import sqlalchemy as sa
import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatter_observatory.core.exceptions import InvalidJobPayloadError, MissingAccessTokenError
from chatter_observatory.core.models.base import utcnow
from chatter_observatory.core.models.captures import Capture, CaptureChatter
from chatter_observatory.core.models.jobs import Job, JobType
from chatter_observatory.core.models.sessions import AnalysisSession
from chatter_observatory.core.models.twitch_users import TwitchUser, TwitchUserName
from chatter_observatory.core.models.users import WebSession
from chatter_observatory.core.schemas.jobs import FetchChattersPayload, FetchUsersInfoPayload
from chatter_observatory.core.schemas.twitch import HelixUser
from chatter_observatory.worker.proxy_client import TwitchProxyClient
from chatter_observatory.worker.queue import enqueue_job

logger = structlog.get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


@dataclass
class JobContext:
    """Dependencies shared by all handlers of one worker process."""

    session_factory: async_sessionmaker[AsyncSession]
    proxy: TwitchProxyClient


JobHandler = Callable[[Job, JobContext], Awaitable[None]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_payload(model: type[PayloadT], job: Job) -> PayloadT:
    try:
        return model.model_validate(job.payload or {})
    except ValidationError as exc:
        raise InvalidJobPayloadError(
            f"invalid {job.type} payload: {exc.errors(include_url=False)}",
            job_id=job.id,
        ) from exc


def _dedupe(ids: list[str]) -> list[str]:
    """Drop duplicate IDs while keeping first-seen order."""
    return list(dict.fromkeys(ids))


async def lookup_access_token(db: AsyncSession, analysis_session_id: int) -> str:
    """Return the freshest valid access token of the analysis session's owner.

    Args:
        db: Open session.
        analysis_session_id: ``sessions.id`` from the job payload.

    Raises:
        MissingAccessTokenError: If the owner has no unexpired web session.
    """
    stmt = (
        sa.select(WebSession.access_token)
        .join(AnalysisSession, AnalysisSession.user_id == WebSession.user_id)
        .where(
            AnalysisSession.id == analysis_session_id,
            WebSession.expires_at > utcnow(),
        )
        .order_by(WebSession.last_activity_at.desc())
        .limit(1)
    )
    token = (await db.execute(stmt)).scalar_one_or_none()
    if not token:
        raise MissingAccessTokenError(analysis_session_id)
    return token


async def store_capture(
    db: AsyncSession,
    payload: FetchChattersPayload,
    chatter_ids: list[str],
) -> Capture:
    """Insert a capture, its chatter rows and the chained users job.

    Runs inside the caller's transaction so the capture and its follow-up
    job become visible together.
    """
    capture = Capture(
        session_id=payload.session_id,
        broadcaster_id=payload.broadcaster_id,
        broadcaster_login=payload.broadcaster_login,
        captured_at=utcnow(),
        chatters_count=len(chatter_ids),
        new_users_count=0,
    )
    db.add(capture)
    await db.flush()

    db.add_all(
        CaptureChatter(capture_id=capture.id, twitch_user_id=user_id)
        for user_id in chatter_ids
    )

    if chatter_ids:
        follow_up = FetchUsersInfoPayload(
            session_id=payload.session_id,
            user_ids=chatter_ids,
        )
        await enqueue_job(db, JobType.FETCH_USERS_INFO, follow_up.model_dump())
    return capture


def _insert_for(db: AsyncSession) -> Callable[..., Any]:
    """Dialect ``insert`` that supports ``ON CONFLICT``."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def upsert_twitch_users(db: AsyncSession, users: list[HelixUser]) -> int:
    """Insert or refresh ``twitch_users`` rows and record renames.

    Known rows are read with ``FOR UPDATE`` so two workers enriching the
    same accounts serialise on the rename check.  The write itself is one
    ``INSERT ... ON CONFLICT DO UPDATE``: an account inserted by another
    worker after the read is updated instead of failing the batch.

    Args:
        db: Open session inside a transaction.
        users: Identities returned by Helix.

    Returns:
        Number of rename-history rows appended.
    """
    # Last answer wins when Helix repeats an ID.
    by_id = {user.id: user for user in users}
    if not by_id:
        return 0

    existing_rows = await db.execute(
        sa.select(TwitchUser.twitch_user_id, TwitchUser.login, TwitchUser.display_name)
        .where(TwitchUser.twitch_user_id.in_(list(by_id)))
        .with_for_update()
    )
    existing = {row.twitch_user_id: row for row in existing_rows}

    now = utcnow()
    renames = 0
    for user in by_id.values():
        row = existing.get(user.id)
        if row is None or (row.login == user.login and row.display_name == user.display_name):
            continue
        db.add(
            TwitchUserName(
                twitch_user_id=user.id,
                previous_login=row.login,
                previous_display_name=row.display_name,
                login=user.login,
                display_name=user.display_name,
                detected_at=now,
            )
        )
        renames += 1
        logger.info(
            "twitch_user_renamed",
            twitch_user_id=user.id,
            previous_login=row.login,
            login=user.login,
            previous_display_name=row.display_name,
            display_name=user.display_name,
        )

    stmt = _insert_for(db)(TwitchUser).values(
        [
            {
                "twitch_user_id": user.id,
                "login": user.login,
                "display_name": user.display_name,
                "broadcaster_type": user.broadcaster_type,
                "type": user.type,
                "view_count": user.view_count,
                "created_at": user.created_at,
                "last_fetched_at": now,
            }
            for user in by_id.values()
        ]
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[TwitchUser.twitch_user_id],
        set_={
            "login": stmt.excluded.login,
            "display_name": stmt.excluded.display_name,
            "broadcaster_type": stmt.excluded.broadcaster_type,
            "type": stmt.excluded.type,
            "view_count": stmt.excluded.view_count,
            "created_at": sa.func.coalesce(stmt.excluded.created_at, TwitchUser.created_at),
            "last_fetched_at": stmt.excluded.last_fetched_at,
        },
    )
    await db.execute(stmt)
    await db.flush()
    return renames


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def handle_fetch_chatters(job: Job, ctx: JobContext) -> None:
    payload = _parse_payload(FetchChattersPayload, job)

    async with ctx.session_factory() as db:
        access_token = await lookup_access_token(db, payload.session_id)

    chatter_ids = _dedupe(
        await ctx.proxy.fetch_all_chatters(
            payload.broadcaster_id,
            payload.twitch_user_id,
            access_token,
        )
    )

    async with ctx.session_factory() as db:
        async with db.begin():
            capture = await store_capture(db, payload, chatter_ids)

    logger.info(
        "capture_stored",
        capture_id=capture.id,
        session_id=payload.session_id,
        broadcaster_id=payload.broadcaster_id,
        chatters_count=len(chatter_ids),
    )


async def handle_fetch_users_info(job: Job, ctx: JobContext) -> None:
    payload = _parse_payload(FetchUsersInfoPayload, job)
    user_ids = _dedupe(payload.user_ids)
    if not user_ids:
        logger.info("users_info_skipped_empty", session_id=payload.session_id)
        return

    async with ctx.session_factory() as db:
        access_token = await lookup_access_token(db, payload.session_id)

    users = await ctx.proxy.fetch_users(user_ids, access_token)

    async with ctx.session_factory() as db:
        async with db.begin():
            renames = await upsert_twitch_users(db, users)

    logger.info(
        "users_info_stored",
        session_id=payload.session_id,
        requested=len(user_ids),
        fetched=len(users),
        renames=renames,
    )


HANDLERS: dict[str, JobHandler] = {
    JobType.FETCH_CHATTERS: handle_fetch_chatters,
    JobType.FETCH_USERS_INFO: handle_fetch_users_info,
}
"""Dispatch table from ``Job.type`` to its handler."""
