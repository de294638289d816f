"""Route handlers of the analysis service.

``GET /sessions/{session_uuid}/summary``
    Aggregate statistics of one analysis session.  ``broadcaster_id`` takes a
    comma-separated list of broadcaster IDs to restrict the statistics to.
    Unknown sessions return 404.

``GET /healthz``
    Runs ``SELECT 1``.  Returns 200 when the database answers, 503 otherwise.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.analysis.summary import build_session_summary, parse_broadcaster_filter
from chatter_observatory.config.settings import Settings
from chatter_observatory.core.database import get_db
from chatter_observatory.core.exceptions import SessionNotFoundError
from chatter_observatory.core.schemas.summary import SessionSummary

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_analysis_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/sessions/{session_uuid}/summary", response_model=SessionSummary)
async def session_summary(
    session_uuid: str,
    broadcaster_id: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_analysis_settings),
) -> SessionSummary:
    """Return the :class:`SessionSummary` of ``session_uuid``.

    Args:
        session_uuid: Public session identifier.
        broadcaster_id: Optional CSV of broadcaster IDs, e.g. ``"42, 43"``.
        db: Injected async database session.
        settings: Service settings; supplies the rename threshold.

    Raises:
        HTTPException 404: If the session does not exist.
        HTTPException 500: If a mandatory aggregate query fails.
    """
    broadcaster_ids = parse_broadcaster_filter(broadcaster_id)
    try:
        return await build_session_summary(
            db,
            session_uuid,
            broadcaster_ids,
            rename_threshold=settings.suspicious_rename_threshold,
        )
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="session not found") from exc
    except SQLAlchemyError as exc:
        logger.exception("summary_failed", session_uuid=session_uuid)
        raise HTTPException(status_code=500, detail="failed to build summary") from exc


@router.get("/healthz", tags=["system"])
async def healthz(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        await db.execute(sa.text("SELECT 1"))
    except Exception:
        logger.exception("health_check_database_unreachable")
        return JSONResponse({"status": "degraded", "database": "error"}, status_code=503)
    return JSONResponse({"status": "ok", "database": "ok"})
