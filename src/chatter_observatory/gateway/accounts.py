"""Gateway accounts and browser login sessions.

Functions take the request's ``AsyncSession``; the ones that write flush but
leave the commit to the caller, except :func:`resolve_current_user`, which
commits the activity timestamp it refreshes.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.models.base import utcnow
from chatter_observatory.core.models.users import User, WebSession
from chatter_observatory.core.schemas.twitch import HelixUser
from chatter_observatory.gateway.twitch_oauth import OAuthToken

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """The logged-in user as seen by route handlers.

    Attributes:
        id: ``users.id``.
        twitch_user_id: Twitch ID of the account.
        login: Twitch login at last sign-in.
        display_name: Twitch display name at last sign-in.
        session_id: ``web_sessions.session_id`` (the cookie value).
        access_token: Twitch user token of this login session.
    """

    id: int
    twitch_user_id: str
    login: str
    display_name: str
    session_id: str
    access_token: str


async def upsert_user(db: AsyncSession, helix_user: HelixUser) -> User:
    """Create or refresh the ``users`` row of a Twitch account."""
    stmt = sa.select(User).where(User.twitch_user_id == helix_user.id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        user = User(twitch_user_id=helix_user.id)
        db.add(user)
    user.login = helix_user.login
    user.display_name = helix_user.display_name
    user.profile_image_url = helix_user.profile_image_url or None
    await db.flush()
    return user


async def create_web_session(
    db: AsyncSession,
    user_id: int,
    token: OAuthToken,
    ttl_hours: int,
) -> WebSession:
    """Insert a login session with a random 32-hex-character identifier."""
    now = utcnow()
    web_session = WebSession(
        session_id=secrets.token_hex(16),
        user_id=user_id,
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        scopes=list(token.scope),
        created_at=now,
        last_activity_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
    )
    db.add(web_session)
    await db.flush()
    return web_session


async def resolve_current_user(db: AsyncSession, session_id: str) -> Optional[CurrentUser]:
    """Look up an unexpired login session and touch its ``last_activity_at``.

    Returns:
        The :class:`CurrentUser`, or ``None`` for unknown or expired sessions.
    """
    stmt = (
        sa.select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_id == session_id, WebSession.expires_at > utcnow())
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    web_session, user = row
    web_session.last_activity_at = utcnow()
    await db.commit()
    return CurrentUser(
        id=user.id,
        twitch_user_id=user.twitch_user_id,
        login=user.login,
        display_name=user.display_name,
        session_id=web_session.session_id,
        access_token=web_session.access_token,
    )


async def delete_web_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(sa.delete(WebSession).where(WebSession.session_id == session_id))
