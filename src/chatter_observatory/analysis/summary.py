"""Aggregate statistics of one analysis session.

All public functions are async and accept an ``AsyncSession``.  The summary
is assembled from four independent queries:

- distinct chatter count
- top account-creation days (with the logins created on each day)
- capture count per broadcaster
- accounts with many recorded renames

Design notes
------------
- The optional broadcaster filter restricts every query except the
  broadcaster breakdown, which always lists the whole session so the UI can
  offer the full filter choice.
- Queries are built with SQLAlchemy Core expressions rather than raw SQL so
  the same code runs on PostgreSQL and on SQLite in the test suite.
  ``DATE()`` exists on both; PostgreSQL returns ``date`` objects and SQLite
  returns ``'YYYY-MM-DD'`` strings, which :func:`_day_to_str` normalises.
- The rename query is non-blocking: if it fails the summary is still served
  with an empty suspicious list.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional, Sequence

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.exceptions import SessionNotFoundError
from chatter_observatory.core.models.base import utcnow
from chatter_observatory.core.models.captures import Capture, CaptureChatter
from chatter_observatory.core.models.sessions import AnalysisSession, SessionStatus
from chatter_observatory.core.models.twitch_users import TwitchUser, TwitchUserName
from chatter_observatory.core.schemas.summary import (
    BroadcasterStats,
    SessionSummary,
    SuspiciousAccount,
    TopDay,
)

logger = structlog.get_logger(__name__)

TOP_DAYS_LIMIT = 10
SUSPICIOUS_ACCOUNTS_LIMIT = 50
DEFAULT_RENAME_THRESHOLD = 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_broadcaster_filter(raw: Optional[str]) -> list[str]:
    """Split a ``broadcaster_id`` CSV query value into trimmed, non-empty IDs."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _day_to_str(value: Any) -> str:  # noqa: ANN401
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def _capture_filters(session_id: int, broadcaster_ids: Sequence[str]) -> list[sa.ColumnElement[bool]]:
    filters: list[sa.ColumnElement[bool]] = [Capture.session_id == session_id]
    if broadcaster_ids:
        filters.append(Capture.broadcaster_id.in_(list(broadcaster_ids)))
    return filters


async def resolve_session_id(db: AsyncSession, session_uuid: str) -> int:
    """Return ``sessions.id`` for a public UUID.

    Raises:
        SessionNotFoundError: If the UUID is unknown or the session was deleted.
    """
    stmt = sa.select(AnalysisSession.id).where(
        AnalysisSession.session_uuid == session_uuid,
        AnalysisSession.status != SessionStatus.DELETED,
    )
    session_id = (await db.execute(stmt)).scalar_one_or_none()
    if session_id is None:
        raise SessionNotFoundError(session_uuid)
    return session_id


# ---------------------------------------------------------------------------
# Individual queries
# ---------------------------------------------------------------------------


async def count_distinct_accounts(
    db: AsyncSession, session_id: int, broadcaster_ids: Sequence[str] = ()
) -> int:
    stmt = (
        sa.select(sa.func.count(sa.distinct(CaptureChatter.twitch_user_id)))
        .select_from(CaptureChatter)
        .join(Capture, Capture.id == CaptureChatter.capture_id)
        .where(*_capture_filters(session_id, broadcaster_ids))
    )
    return int((await db.execute(stmt)).scalar_one() or 0)


async def get_top_creation_days(
    db: AsyncSession,
    session_id: int,
    broadcaster_ids: Sequence[str] = (),
    *,
    limit: int = TOP_DAYS_LIMIT,
    include_logins: bool = True,
) -> list[TopDay]:
    """Most common account-creation dates among the session's enriched chatters.

    Ordered by distinct-account count descending, then date ascending.  Each
    entry's ``logins`` is sorted ascending.
    """
    day = sa.func.date(TwitchUser.created_at).label("created_day")
    accounts = sa.func.count(sa.distinct(CaptureChatter.twitch_user_id)).label("accounts")
    filters = _capture_filters(session_id, broadcaster_ids)
    stmt = (
        sa.select(day, accounts)
        .select_from(CaptureChatter)
        .join(Capture, Capture.id == CaptureChatter.capture_id)
        .join(TwitchUser, TwitchUser.twitch_user_id == CaptureChatter.twitch_user_id)
        .where(*filters, TwitchUser.created_at.is_not(None))
        .group_by(day)
        .order_by(accounts.desc(), day.asc())
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()

    top_days: list[TopDay] = []
    for row in rows:
        logins: list[str] = []
        if include_logins:
            logins_stmt = (
                sa.select(TwitchUser.login)
                .distinct()
                .select_from(CaptureChatter)
                .join(Capture, Capture.id == CaptureChatter.capture_id)
                .join(TwitchUser, TwitchUser.twitch_user_id == CaptureChatter.twitch_user_id)
                .where(*filters, sa.func.date(TwitchUser.created_at) == row.created_day)
                .order_by(TwitchUser.login.asc())
            )
            logins = list((await db.execute(logins_stmt)).scalars())
        top_days.append(TopDay(date=_day_to_str(row.created_day), count=int(row.accounts), logins=logins))
    return top_days


async def get_broadcaster_breakdown(db: AsyncSession, session_id: int) -> list[BroadcasterStats]:
    """Capture count per broadcaster, count descending then login ascending."""
    login = sa.func.coalesce(Capture.broadcaster_login, "").label("login")
    captures = sa.func.count(Capture.id).label("captures")
    stmt = (
        sa.select(Capture.broadcaster_id, login, captures)
        .where(Capture.session_id == session_id)
        .group_by(Capture.broadcaster_id, Capture.broadcaster_login)
        .order_by(captures.desc(), login.asc())
    )
    return [
        BroadcasterStats(
            broadcaster_id=row.broadcaster_id,
            broadcaster_login=row.login,
            capture_count=int(row.captures),
        )
        for row in (await db.execute(stmt)).all()
    ]


async def get_suspicious_accounts(
    db: AsyncSession,
    session_id: int,
    broadcaster_ids: Sequence[str] = (),
    *,
    threshold: int = DEFAULT_RENAME_THRESHOLD,
    limit: int = SUSPICIOUS_ACCOUNTS_LIMIT,
) -> list[SuspiciousAccount]:
    """Session chatters with at least ``threshold`` recorded renames.

    Ordered by rename count descending, then login ascending, capped at
    ``limit``.  Renames are counted once per history row no matter how many
    captures the account appears in.
    """
    session_chatters = (
        sa.select(CaptureChatter.twitch_user_id)
        .join(Capture, Capture.id == CaptureChatter.capture_id)
        .where(*_capture_filters(session_id, broadcaster_ids))
        .distinct()
        .subquery()
    )
    rename_count = sa.func.count(sa.distinct(TwitchUserName.id))
    rename_label = rename_count.label("rename_count")
    stmt = (
        sa.select(
            TwitchUser.twitch_user_id,
            TwitchUser.login,
            TwitchUser.display_name,
            rename_label,
        )
        .join(session_chatters, session_chatters.c.twitch_user_id == TwitchUser.twitch_user_id)
        .join(TwitchUserName, TwitchUserName.twitch_user_id == TwitchUser.twitch_user_id)
        .group_by(TwitchUser.twitch_user_id, TwitchUser.login, TwitchUser.display_name)
        .having(rename_count >= threshold)
        .order_by(rename_label.desc(), TwitchUser.login.asc())
        .limit(limit)
    )
    return [
        SuspiciousAccount(
            twitch_user_id=row.twitch_user_id,
            login=row.login,
            display_name=row.display_name or "",
            rename_count=int(row.rename_count),
        )
        for row in (await db.execute(stmt)).all()
    ]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


async def build_session_summary(
    db: AsyncSession,
    session_uuid: str,
    broadcaster_ids: Sequence[str] = (),
    *,
    rename_threshold: int = DEFAULT_RENAME_THRESHOLD,
) -> SessionSummary:
    """Compute the full :class:`SessionSummary` of one session.

    Args:
        db: Open session.
        session_uuid: Public session identifier.
        broadcaster_ids: Optional broadcaster filter (empty means all).
        rename_threshold: Minimum renames for an account to be flagged.

    Raises:
        SessionNotFoundError: If the session does not exist.
    """
    session_id = await resolve_session_id(db, session_uuid)

    total = await count_distinct_accounts(db, session_id, broadcaster_ids)
    top_days = await get_top_creation_days(db, session_id, broadcaster_ids)
    broadcasters = await get_broadcaster_breakdown(db, session_id)

    try:
        suspicious = await get_suspicious_accounts(
            db, session_id, broadcaster_ids, threshold=rename_threshold
        )
    except SQLAlchemyError:
        logger.exception("suspicious_accounts_query_failed", session_uuid=session_uuid)
        suspicious = []

    return SessionSummary(
        session_uuid=session_uuid,
        total_accounts=total,
        top_days=top_days,
        broadcasters=broadcasters,
        suspicious_renames_count=len(suspicious),
        suspicious_accounts=suspicious,
        generated_at=utcnow(),
    )
