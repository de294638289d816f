"""ORM models for gateway accounts and their login sessions.

- ``User``: one row per Twitch account that has logged into the gateway.
- ``WebSession``: one row per browser login.  Holds the OAuth tokens the
  worker borrows to call the Twitch API on the user's behalf.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chatter_observatory.core.models.base import Base, BigIntPK, JSONType, TimestampMixin, TZDateTime


class User(TimestampMixin, Base):
    """A gateway account, keyed internally by ``id`` and externally by Twitch ID."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    twitch_user_id: Mapped[str] = mapped_column(sa.String(32), nullable=False, unique=True)
    login: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="")
    profile_image_url: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} login={self.login!r}>"


class WebSession(Base):
    """A browser login session identified by the ``tca_session`` cookie value.

    Attributes:
        session_id: 32-character hex string (16 random bytes), also the cookie value.
        user_id: Owning gateway account.
        access_token: Twitch user access token obtained at login.
        refresh_token: Twitch refresh token, if one was issued.
        scopes: Granted OAuth scopes.
        last_activity_at: Refreshed on every authenticated request.  The
            worker uses the most recently active session of a user.
        expires_at: Hard expiry; expired rows are never used.
    """

    __tablename__ = "web_sessions"

    session_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntPK,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token: Mapped[str] = mapped_column(sa.Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    scopes: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, server_default=sa.func.now()
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, server_default=sa.func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
