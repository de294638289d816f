"""FastAPI dependency providers for the gateway.

Dependency hierarchy::

    get_optional_user   returns None when the request carries no valid session
    require_user        raises LoginRequired, which main.py turns into a
                        redirect to /auth/login

Client dependencies resolve the HTTP clients that ``create_app()`` stores on
``app.state``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.database import get_db
from chatter_observatory.gateway.accounts import CurrentUser, resolve_current_user
from chatter_observatory.gateway.analysis_client import AnalysisClient
from chatter_observatory.gateway.channels import ChannelsClient
from chatter_observatory.gateway.twitch_oauth import TwitchOAuthClient

SESSION_COOKIE = "tca_session"
OAUTH_STATE_COOKIE = "tca_oauth_state"


class LoginRequired(Exception):
    """Raised by :func:`require_user` for anonymous requests to protected pages."""


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[CurrentUser]:
    """Resolve the user from the ``tca_session`` cookie.

    Unknown and expired sessions count as anonymous.  A valid session has its
    ``last_activity_at`` refreshed.
    """
    session_id = request.cookies.get(SESSION_COOKIE)
    if not session_id:
        return None
    return await resolve_current_user(db, session_id)


async def require_user(
    user: Optional[CurrentUser] = Depends(get_optional_user),
) -> CurrentUser:
    """Require a logged-in user.

    Raises:
        LoginRequired: If the request is anonymous.
    """
    if user is None:
        raise LoginRequired()
    return user


# ---------------------------------------------------------------------------
# App-scoped objects
# ---------------------------------------------------------------------------


def get_gateway_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_oauth_client(request: Request) -> TwitchOAuthClient:
    return request.app.state.oauth


def get_analysis_client(request: Request) -> AnalysisClient:
    return request.app.state.analysis


def get_channels_client(request: Request) -> ChannelsClient:
    return request.app.state.channels
