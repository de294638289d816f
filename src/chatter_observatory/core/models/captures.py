"""ORM models for chatter captures.

A ``Capture`` is one snapshot of a channel's chatter list; it owns one
``CaptureChatter`` row per Twitch user ID present at capture time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chatter_observatory.core.models.base import Base, BigIntPK, TZDateTime


class Capture(Base):
    __tablename__ = "captures"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        BigIntPK,
        sa.ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    broadcaster_id: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    broadcaster_login: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    captured_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    chatters_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    new_users_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)


class CaptureChatter(Base):
    __tablename__ = "capture_chatters"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    capture_id: Mapped[int] = mapped_column(
        BigIntPK,
        sa.ForeignKey("captures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    twitch_user_id: Mapped[str] = mapped_column(sa.String(32), nullable=False, index=True)
