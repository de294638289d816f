"""Per-account downloads of an analysis session.

Routes:
    GET /analysis/export?format=csv|json               → active session
    GET /sessions/export/{session_uuid}?format=csv|json → saved session

``format`` defaults to ``json``; any other value is rejected with 400.  Both
routes are rate limited per client IP (``EXPORT_RATE_LIMIT``).
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.database import get_db
from chatter_observatory.core.models.sessions import AnalysisSession, SessionStatus
from chatter_observatory.gateway.accounts import CurrentUser
from chatter_observatory.gateway.dependencies import require_user
from chatter_observatory.gateway.export import EXPORT_FORMATS, AccountExporter, load_export_rows
from chatter_observatory.gateway.limiter import export_limit, limiter
from chatter_observatory.gateway.session_service import (
    AnalysisSessionService,
    get_session_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter(include_in_schema=False)


def _check_format(format: str) -> None:  # noqa: A002
    if format not in EXPORT_FORMATS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported export format {format!r}. Choose from: {', '.join(EXPORT_FORMATS)}.",
        )


async def _export(db: AsyncSession, session: AnalysisSession, format: str) -> Response:  # noqa: A002
    rows = await load_export_rows(db, session.id)
    exporter = AccountExporter()
    if format == "csv":
        content = exporter.export_csv(rows)
    else:
        content = exporter.export_json(session.session_uuid, rows)

    media_type, extension = EXPORT_FORMATS[format]
    filename = f"session_{session.session_uuid}.{extension}"
    logger.info(
        "session_exported",
        session_uuid=session.session_uuid,
        format=format,
        record_count=len(rows),
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Record-Count": str(len(rows)),
        },
    )


@router.get("/analysis/export")
@limiter.limit(export_limit)
async def export_active_session(
    request: Request,
    format: str = Query(default="json"),  # noqa: A002
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> Response:
    """Download the accounts of the active session.

    Raises:
        HTTPException 400: On an unsupported ``format``.
        HTTPException 404: If the user has no active session.
    """
    _check_format(format)
    active = await sessions.get_active(user.id)
    if active is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no active session")
    return await _export(db, active, format)


@router.get("/sessions/export/{session_uuid}")
@limiter.limit(export_limit)
async def export_saved_session(
    request: Request,
    session_uuid: str,
    format: str = Query(default="json"),  # noqa: A002
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    sessions: AnalysisSessionService = Depends(get_session_service),
) -> Response:
    """Download the accounts of one of the user's saved sessions.

    Raises:
        HTTPException 400: On an unsupported ``format``.
        HTTPException 404: If the session is unknown, not saved or not owned.
    """
    _check_format(format)
    saved = await sessions.get_owned(user.id, session_uuid, SessionStatus.SAVED)
    if saved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session not found")
    return await _export(db, saved, format)
