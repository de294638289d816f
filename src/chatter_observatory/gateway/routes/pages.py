"""HTML page routes rendered with Jinja2 templates.

Anonymous requests to pages that need a user raise ``LoginRequired``; the
handler registered in ``main.py`` redirects them to ``/auth/login``.

Routes:
    GET /                                  → index.html
    GET /channels                          → channels.html
    GET /accounts/{twitch_user_id}/history → account_history.html
"""

from __future__ import annotations

from typing import Optional

import httpx
import sqlalchemy as sa
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.database import get_db
from chatter_observatory.core.exceptions import ProxyError
from chatter_observatory.core.models.twitch_users import TwitchUser, TwitchUserName
from chatter_observatory.core.schemas.twitch import ModeratedChannel
from chatter_observatory.gateway.accounts import CurrentUser
from chatter_observatory.gateway.channels import ChannelsClient, build_channel_list
from chatter_observatory.gateway.dependencies import (
    get_channels_client,
    get_optional_user,
    get_templates,
    require_user,
)
from chatter_observatory.gateway.session_service import (
    AnalysisSessionService,
    get_session_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter(include_in_schema=False)


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    has_active = await sessions.has_active(user.id) if user is not None else False
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "user": user,
            "has_active_session": has_active,
            "logged_out": request.query_params.get("logged_out") == "1",
        },
    )


@router.get("/channels", response_class=HTMLResponse)
async def channels_page(
    request: Request,
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
    channels_client: ChannelsClient = Depends(get_channels_client),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    """List the user's own channel followed by the channels they moderate.

    A failing moderated-channel lookup is logged and the page shows the own
    channel only.
    """
    own_channel = ModeratedChannel(
        broadcaster_id=user.twitch_user_id,
        broadcaster_login=user.login,
        broadcaster_name=user.display_name or user.login,
    )
    try:
        moderated = await channels_client.moderated_channels(user.twitch_user_id, user.access_token)
    except (ProxyError, httpx.HTTPError) as exc:
        logger.warning("moderated_channels_lookup_failed", user_id=user.id, error=str(exc))
        moderated = []

    return templates.TemplateResponse(
        request,
        "channels.html",
        {
            "user": user,
            "channels": build_channel_list(own_channel, moderated),
            "has_active_session": await sessions.has_active(user.id),
            "capture_enqueued": request.query_params.get("capture_enqueued") == "1",
            "purged": request.query_params.get("purged") == "1",
            "purge_no_session": request.query_params.get("purge_no_session") == "1",
        },
    )


@router.get("/accounts/{twitch_user_id}/history", response_class=HTMLResponse)
async def account_history(
    request: Request,
    twitch_user_id: str,
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    """Current identity of an account and its rename history, newest first.

    Raises:
        HTTPException 404: If the account has never been fetched.
    """
    account = await db.get(TwitchUser, twitch_user_id)
    if account is None:
        raise HTTPException(status_code=404, detail="account not found")

    stmt = (
        sa.select(TwitchUserName)
        .where(TwitchUserName.twitch_user_id == twitch_user_id)
        .order_by(TwitchUserName.detected_at.desc(), TwitchUserName.id.desc())
    )
    history = list((await db.execute(stmt)).scalars())
    return templates.TemplateResponse(
        request,
        "account_history.html",
        {"user": user, "account": account, "history": history},
    )
