"""ORM models for Twitch identities seen in chat.

``TwitchUser`` holds the latest known identity of every chatter the worker
has enriched.  ``TwitchUserName`` is the append-only rename log: one row is
written each time a fetch returns a login or display name that differs from
the stored one.  The analysis service counts these rows to flag accounts
that rename suspiciously often.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chatter_observatory.core.models.base import Base, BigIntPK, TZDateTime


class TwitchUser(Base):
    """Latest known identity of a Twitch account.

    Attributes:
        twitch_user_id: Helix ``id``; primary key.
        created_at: Account creation time reported by Helix (not row creation).
        broadcaster_type: ``""``, ``"affiliate"`` or ``"partner"``.
        type: ``""``, ``"staff"``, ``"admin"`` or ``"global_mod"``.
        last_fetched_at: When the worker last refreshed the row.
    """

    __tablename__ = "twitch_users"

    twitch_user_id: Mapped[str] = mapped_column(sa.String(32), primary_key=True)
    login: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="")
    created_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime, nullable=True)
    broadcaster_type: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="")
    type: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="")
    view_count: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    last_fetched_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)


class TwitchUserName(Base):
    """One detected rename.  ``login``/``display_name`` hold the new values."""

    __tablename__ = "twitch_user_names"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    twitch_user_id: Mapped[str] = mapped_column(sa.String(32), nullable=False, index=True)
    previous_login: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    previous_display_name: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="")
    login: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="")
    detected_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
