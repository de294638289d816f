"""Database helpers for gateway accounts.

Unlike the dict factories, these insert committed rows, so they take the
test ``session_factory``.

Usage::

    from tests.factories.users import create_logged_in_user

    user = await create_logged_in_user(session_factory, twitch_user_id="7")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatter_observatory.core.models import User, WebSession, utcnow


@dataclass
class SeededUser:
    id: int
    twitch_user_id: str
    login: str
    session_id: str
    access_token: str


async def create_logged_in_user(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    twitch_user_id: str = "99",
    login: str = "moderator_one",
    session_id: str = "a" * 32,
    access_token: str = "user-access-token",
    expires_in: timedelta = timedelta(hours=24),
) -> SeededUser:
    """Insert a ``users`` row plus a ``web_sessions`` row and commit them."""
    async with session_factory() as session:
        user = User(twitch_user_id=twitch_user_id, login=login, display_name=login.title())
        session.add(user)
        await session.flush()
        now = utcnow()
        session.add(
            WebSession(
                session_id=session_id,
                user_id=user.id,
                access_token=access_token,
                refresh_token=None,
                scopes=["moderator:read:chatters"],
                created_at=now,
                last_activity_at=now,
                expires_at=now + expires_in,
            )
        )
        await session.commit()
        return SeededUser(
            id=user.id,
            twitch_user_id=twitch_user_id,
            login=login,
            session_id=session_id,
            access_token=access_token,
        )
