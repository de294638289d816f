"""Per-account export of an analysis session.

One row per distinct chatter of the session:

    twitch_user_id, login, display_name, created_at, seen_count, first_seen, last_seen

``seen_count`` is the number of captures the account appeared in;
``first_seen`` / ``last_seen`` are the earliest and latest of those capture
times.  Chatters whose identity has not been fetched yet still appear, with
empty ``login`` / ``display_name`` / ``created_at``.  Rows are ordered by
``seen_count`` descending, then login ascending.

:func:`load_export_rows` runs the query; :class:`AccountExporter` only
serialises the resulting dicts, so the same rows feed both formats.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import UTC, datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.models.base import utcnow
from chatter_observatory.core.models.captures import Capture, CaptureChatter
from chatter_observatory.core.models.twitch_users import TwitchUser

EXPORT_COLUMNS: tuple[str, ...] = (
    "twitch_user_id",
    "login",
    "display_name",
    "created_at",
    "seen_count",
    "first_seen",
    "last_seen",
)

#: Supported ``format`` values mapped to (media type, file extension).
EXPORT_FORMATS: dict[str, tuple[str, str]] = {
    "csv": ("text/csv; charset=utf-8", "csv"),
    "json": ("application/json", "json"),
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _rfc3339(value: Optional[datetime]) -> str:
    value = _as_utc(value)
    if value is None:
        return ""
    return value.isoformat().replace("+00:00", "Z")


async def load_export_rows(db: AsyncSession, session_id: int) -> list[dict[str, Any]]:
    """Aggregate the chatters of ``session_id`` into export rows."""
    seen_count = sa.func.count(sa.distinct(CaptureChatter.capture_id)).label("seen_count")
    stmt = (
        sa.select(
            CaptureChatter.twitch_user_id,
            TwitchUser.login,
            TwitchUser.display_name,
            TwitchUser.created_at,
            seen_count,
            sa.func.min(Capture.captured_at).label("first_seen"),
            sa.func.max(Capture.captured_at).label("last_seen"),
        )
        .select_from(CaptureChatter)
        .join(Capture, Capture.id == CaptureChatter.capture_id)
        .outerjoin(TwitchUser, TwitchUser.twitch_user_id == CaptureChatter.twitch_user_id)
        .where(Capture.session_id == session_id)
        .group_by(
            CaptureChatter.twitch_user_id,
            TwitchUser.login,
            TwitchUser.display_name,
            TwitchUser.created_at,
        )
        .order_by(
            seen_count.desc(),
            sa.func.coalesce(TwitchUser.login, "").asc(),
            CaptureChatter.twitch_user_id.asc(),
        )
    )
    return [
        {
            "twitch_user_id": row.twitch_user_id,
            "login": row.login or "",
            "display_name": row.display_name or "",
            "created_at": _as_utc(row.created_at),
            "seen_count": int(row.seen_count),
            "first_seen": _as_utc(row.first_seen),
            "last_seen": _as_utc(row.last_seen),
        }
        for row in (await db.execute(stmt)).all()
    ]


class AccountExporter:
    """Serialises export rows to CSV or JSON bytes."""

    def export_csv(self, rows: list[dict[str, Any]]) -> bytes:
        """Header plus one line per account, timestamps in RFC 3339.

        Returns:
            UTF-8 bytes with a BOM so spreadsheet tools detect the encoding.
        """
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\r\n")
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow(
                [
                    row["twitch_user_id"],
                    row["login"],
                    row["display_name"],
                    _rfc3339(row["created_at"]),
                    row["seen_count"],
                    _rfc3339(row["first_seen"]),
                    _rfc3339(row["last_seen"]),
                ]
            )
        return buf.getvalue().encode("utf-8-sig")

    def export_json(
        self,
        session_uuid: str,
        rows: list[dict[str, Any]],
        exported_at: Optional[datetime] = None,
    ) -> bytes:
        """``{"session_uuid", "exported_at", "accounts": [...]}`` as UTF-8 JSON."""
        document = {
            "session_uuid": session_uuid,
            "exported_at": _rfc3339(exported_at or utcnow()),
            "accounts": [
                {
                    **row,
                    "created_at": _rfc3339(row["created_at"]) or None,
                    "first_seen": _rfc3339(row["first_seen"]),
                    "last_seen": _rfc3339(row["last_seen"]),
                }
                for row in rows
            ],
        }
        return json.dumps(document, ensure_ascii=False).encode("utf-8")
