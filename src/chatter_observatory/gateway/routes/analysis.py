"""Analysis pages backed by the analysis service.

Routes:
    GET /analysis                       → analysis.html for the active session
    GET /analysis/saved/{session_uuid}  → analysis.html for a saved session

Both accept repeated or comma-separated ``broadcaster_id`` query values and
pass them through to the analysis service.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from chatter_observatory.analysis.summary import parse_broadcaster_filter
from chatter_observatory.core.exceptions import AnalysisServiceError, SessionNotFoundError
from chatter_observatory.core.models.sessions import SessionStatus
from chatter_observatory.gateway.accounts import CurrentUser
from chatter_observatory.gateway.analysis_client import AnalysisClient
from chatter_observatory.gateway.dependencies import (
    get_analysis_client,
    get_templates,
    require_user,
)
from chatter_observatory.gateway.session_service import (
    AnalysisSessionService,
    get_session_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/analysis", include_in_schema=False)


def _broadcaster_ids(request: Request) -> list[str]:
    ids: list[str] = []
    for raw in request.query_params.getlist("broadcaster_id"):
        ids.extend(parse_broadcaster_filter(raw))
    return ids


async def _render_summary(
    request: Request,
    user: CurrentUser,
    session_uuid: str,
    *,
    is_saved: bool,
    analysis: AnalysisClient,
    templates: Jinja2Templates,
) -> HTMLResponse:
    broadcaster_ids = _broadcaster_ids(request)
    try:
        summary = await analysis.get_summary(session_uuid, broadcaster_ids)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="analysis session not found") from exc
    except AnalysisServiceError as exc:
        logger.warning("analysis_fetch_failed", session_uuid=session_uuid, error=str(exc))
        raise HTTPException(status_code=502, detail="failed to load analysis") from exc

    return templates.TemplateResponse(
        request,
        "analysis.html",
        {
            "user": user,
            "session_uuid": session_uuid,
            "summary": summary,
            "broadcaster_ids": broadcaster_ids,
            "is_saved": is_saved,
            "save_no_session": request.query_params.get("save_no_session") == "1",
        },
    )


@router.get("", response_class=HTMLResponse)
async def active_analysis(
    request: Request,
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
    analysis: AnalysisClient = Depends(get_analysis_client),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    """Summary of the user's active session.

    Raises:
        HTTPException 404: If the user has no active session.
        HTTPException 502: If the analysis service fails.
    """
    active = await sessions.get_active(user.id)
    if active is None:
        raise HTTPException(status_code=404, detail="no active analysis session")
    return await _render_summary(
        request,
        user,
        active.session_uuid,
        is_saved=False,
        analysis=analysis,
        templates=templates,
    )


@router.get("/saved/{session_uuid}", response_class=HTMLResponse)
async def saved_analysis(
    request: Request,
    session_uuid: str,
    user: CurrentUser = Depends(require_user),
    sessions: AnalysisSessionService = Depends(get_session_service),
    analysis: AnalysisClient = Depends(get_analysis_client),
    templates: Jinja2Templates = Depends(get_templates),
) -> HTMLResponse:
    saved = await sessions.get_owned(user.id, session_uuid, SessionStatus.SAVED)
    if saved is None:
        raise HTTPException(status_code=404, detail="session not found or not saved")
    return await _render_summary(
        request,
        user,
        session_uuid,
        is_saved=True,
        analysis=analysis,
        templates=templates,
    )
