"""Twitch OAuth login and logout.

Routes:
    GET  /auth/login     → 302 to Twitch authorize, sets ``tca_oauth_state``
    GET  /auth/callback  → 302 to /channels, sets ``tca_session``
    GET|POST /auth/logout → 302/303 to ``/?logged_out=1``
"""

from __future__ import annotations

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.database import get_db
from chatter_observatory.core.exceptions import TwitchAuthError
from chatter_observatory.gateway.accounts import (
    CurrentUser,
    create_web_session,
    delete_web_session,
    upsert_user,
)
from chatter_observatory.gateway.dependencies import (
    OAUTH_STATE_COOKIE,
    SESSION_COOKIE,
    get_gateway_settings,
    get_oauth_client,
    get_optional_user,
)
from chatter_observatory.gateway.session_service import (
    AnalysisSessionService,
    get_session_service,
)
from chatter_observatory.gateway.twitch_oauth import TwitchOAuthClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", include_in_schema=False)

_STATE_COOKIE_MAX_AGE = 300


@router.get("/login")
async def login(
    settings: Settings = Depends(get_gateway_settings),
    oauth: TwitchOAuthClient = Depends(get_oauth_client),
) -> RedirectResponse:
    """Start the authorization-code flow."""
    if not oauth.configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Twitch auth not configured",
        )
    state = secrets.token_hex(32)
    response = RedirectResponse(oauth.authorize_url(state), status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=_STATE_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_gateway_settings),
    oauth: TwitchOAuthClient = Depends(get_oauth_client),
) -> RedirectResponse:
    """Finish the flow: verify state, exchange the code, open a login session.

    Raises:
        HTTPException 400: On a Twitch-reported error, missing parameters or
            a state mismatch.
        HTTPException 502: If Twitch rejects the code or the user lookup.
    """
    if error:
        logger.warning("twitch_auth_denied", error=error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Twitch auth error")
    if not code or not state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing code or state")
    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not expected_state or not secrets.compare_digest(expected_state, state):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid state")

    try:
        token = await oauth.exchange_code(code)
        helix_user = await oauth.fetch_user(token.access_token)
    except TwitchAuthError as exc:
        logger.warning("twitch_auth_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="failed to authenticate with Twitch",
        ) from exc

    user = await upsert_user(db, helix_user)
    web_session = await create_web_session(db, user.id, token, settings.session_ttl_hours)
    await db.commit()
    logger.info("user_logged_in", user_id=user.id, twitch_user_id=user.twitch_user_id)

    response = RedirectResponse("/channels", status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        SESSION_COOKIE,
        web_session.session_id,
        max_age=settings.session_ttl_hours * 3600,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    response.delete_cookie(OAUTH_STATE_COOKIE, path="/")
    return response


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    sessions: AnalysisSessionService = Depends(get_session_service),
    oauth: TwitchOAuthClient = Depends(get_oauth_client),
) -> RedirectResponse:
    """Purge the active analysis session, end the login and revoke the token."""
    redirect_status = (
        status.HTTP_303_SEE_OTHER if request.method == "POST" else status.HTTP_302_FOUND
    )
    if user is None:
        response = RedirectResponse("/", status_code=redirect_status)
        response.delete_cookie(SESSION_COOKIE, path="/")
        return response

    await sessions.purge_active(user.id)
    await delete_web_session(db, user.session_id)
    await db.commit()

    try:
        await oauth.revoke(user.access_token)
    except TwitchAuthError as exc:
        logger.warning("token_revoke_failed", user_id=user.id, error=str(exc))

    logger.info("user_logged_out", user_id=user.id)
    response = RedirectResponse("/?logged_out=1", status_code=redirect_status)
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(OAUTH_STATE_COOKIE, path="/")
    return response
