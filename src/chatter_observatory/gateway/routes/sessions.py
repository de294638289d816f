"""Analysis-session controls.

Routes:
    POST /sessions/capture  → queue a chatter capture into the active session
    POST /sessions/save     → active session becomes ``saved``
    POST /sessions/purge    → drop the active session's captures
    POST /sessions/delete   → delete a saved session
    GET  /sessions          → sessions.html (saved sessions)

POST handlers answer ``303 See Other`` so the browser follows with a GET.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from chatter_observatory.gateway.accounts import CurrentUser
from chatter_observatory.gateway.dependencies import get_templates, require_user
from chatter_observatory.gateway.session_service import (
    AnalysisSessionService,
    get_session_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", include_in_schema=False)


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/capture")
async def capture(
    broadcaster_id: str = Form(default=""),
    broadcaster_login: str = Form(default=""),
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> RedirectResponse:
    """Enqueue ``FETCH_CHATTERS`` for one channel.

    Raises:
        HTTPException 400: If the broadcaster fields are missing.
    """
    broadcaster_id = broadcaster_id.strip()
    broadcaster_login = broadcaster_login.strip()
    if not broadcaster_id or not broadcaster_login:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing broadcaster")

    job = await sessions.enqueue_capture(
        user.id, user.twitch_user_id, broadcaster_id, broadcaster_login
    )
    logger.info(
        "capture_enqueued",
        job_id=job.id,
        user_id=user.id,
        broadcaster_id=broadcaster_id,
    )
    return _see_other("/channels?capture_enqueued=1")


@router.post("/save")
async def save(
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> RedirectResponse:
    if await sessions.save_active(user.id) is None:
        return _see_other("/analysis?save_no_session=1")
    return _see_other("/sessions?saved=1")


@router.post("/purge")
async def purge(
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> RedirectResponse:
    if await sessions.purge_active(user.id) is None:
        return _see_other("/channels?purge_no_session=1")
    return _see_other("/channels?purged=1")


@router.post("/delete")
async def delete(
    session_uuid: str = Form(default=""),
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> RedirectResponse:
    """Delete one of the user's saved sessions with all its captures."""
    session_uuid = session_uuid.strip()
    if not session_uuid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing session_uuid")
    if not await sessions.delete_saved(user.id, session_uuid):
        return _see_other("/sessions?delete_not_found=1")
    return _see_other("/sessions?deleted=1")


@router.get("", response_class=HTMLResponse)
async def list_sessions(
    request: Request,
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    query = request.query_params
    return templates.TemplateResponse(
        request,
        "sessions.html",
        {
            "user": user,
            "sessions": await sessions.list_saved(user.id),
            "has_active_session": await sessions.has_active(user.id),
            "saved": query.get("saved") == "1",
            "deleted": query.get("deleted") == "1",
            "delete_not_found": query.get("delete_not_found") == "1",
        },
    )
