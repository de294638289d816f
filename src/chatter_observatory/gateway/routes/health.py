"""Gateway readiness check.

``GET /healthz``
    Runs ``SELECT 1`` against the database.  Returns 200 with
    ``{"status": "ok"}`` when it answers and 503 with ``"degraded"``
    otherwise.  Process liveness without I/O is ``GET /health`` in ``main.py``.
"""

from __future__ import annotations

import sqlalchemy as sa
import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from chatter_observatory.core.database import AsyncSessionLocal

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["system"])


async def _check_database() -> str:
    """Return ``"ok"`` if ``SELECT 1`` succeeds, ``"error"`` otherwise."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:
        logger.exception("health_check_database_unreachable")
        return "error"


@router.get("/healthz")
async def healthz() -> JSONResponse:
    database = await _check_database()
    if database != "ok":
        return JSONResponse({"status": "degraded", "database": database}, status_code=503)
    return JSONResponse({"status": "ok", "database": database})
