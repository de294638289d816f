"""ORM model for analysis sessions.

An analysis session groups the captures a user takes of one or more
channels.  A user has at most one ``active`` session at a time; it can be
``saved`` for later review, or ``deleted`` (captures purged, row retained).
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chatter_observatory.core.models.base import Base, BigIntPK, TimestampMixin


class SessionStatus:
    """Allowed values of ``AnalysisSession.status``."""

    ACTIVE = "active"
    SAVED = "saved"
    DELETED = "deleted"


class AnalysisSession(TimestampMixin, Base):
    """One capture/tracking period, addressed publicly by ``session_uuid``."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_uuid: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(
        BigIntPK,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, default=SessionStatus.ACTIVE
    )

    __table_args__ = (
        sa.Index("idx_sessions_user_status", "user_id", "status"),
    )
