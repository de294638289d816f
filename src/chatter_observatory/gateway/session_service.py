"""Analysis-session lifecycle for the gateway.

A user owns at most one ``active`` session.  Captures accumulate in it until
the user saves it (``saved``, kept for later review) or purges it (captures
removed, row kept as ``deleted``).  Saved sessions can be deleted outright.

All write methods commit immediately; the routes only read afterwards.
"""

from __future__ import annotations

import uuid
from typing import Optional

import sqlalchemy as sa
import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatter_observatory.core.database import get_db
from chatter_observatory.core.models.captures import Capture, CaptureChatter
from chatter_observatory.core.models.jobs import Job, JobType
from chatter_observatory.core.models.sessions import AnalysisSession, SessionStatus
from chatter_observatory.core.schemas.jobs import FetchChattersPayload
from chatter_observatory.worker.queue import enqueue_job

logger = structlog.get_logger(__name__)


class AnalysisSessionService:
    """Reads and transitions the analysis sessions of one user.

    Args:
        session: An open :class:`sqlalchemy.ext.asyncio.AsyncSession`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_active(self, user_id: int) -> Optional[AnalysisSession]:
        stmt = (
            sa.select(AnalysisSession)
            .where(
                AnalysisSession.user_id == user_id,
                AnalysisSession.status == SessionStatus.ACTIVE,
            )
            .order_by(AnalysisSession.id.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def has_active(self, user_id: int) -> bool:
        return await self.get_active(user_id) is not None

    async def get_owned(
        self, user_id: int, session_uuid: str, status: Optional[str] = None
    ) -> Optional[AnalysisSession]:
        """Return ``session_uuid`` if it belongs to ``user_id`` (and has ``status``)."""
        stmt = sa.select(AnalysisSession).where(
            AnalysisSession.user_id == user_id,
            AnalysisSession.session_uuid == session_uuid,
        )
        if status is not None:
            stmt = stmt.where(AnalysisSession.status == status)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_saved(self, user_id: int) -> list[AnalysisSession]:
        """Saved sessions of ``user_id``, most recently updated first."""
        stmt = (
            sa.select(AnalysisSession)
            .where(
                AnalysisSession.user_id == user_id,
                AnalysisSession.status == SessionStatus.SAVED,
            )
            .order_by(AnalysisSession.updated_at.desc(), AnalysisSession.id.desc())
        )
        return list((await self.session.execute(stmt)).scalars())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def get_or_create_active(self, user_id: int) -> AnalysisSession:
        active = await self.get_active(user_id)
        if active is not None:
            return active
        active = AnalysisSession(
            session_uuid=uuid.uuid4().hex,
            user_id=user_id,
            status=SessionStatus.ACTIVE,
        )
        self.session.add(active)
        await self.session.flush()
        logger.info("analysis_session_created", session_uuid=active.session_uuid, user_id=user_id)
        return active

    async def enqueue_capture(
        self,
        user_id: int,
        twitch_user_id: str,
        broadcaster_id: str,
        broadcaster_login: Optional[str],
    ) -> Job:
        """Queue a ``FETCH_CHATTERS`` job into the user's active session.

        Creates the active session first when the user has none.
        """
        active = await self.get_or_create_active(user_id)
        payload = FetchChattersPayload(
            session_id=active.id,
            twitch_user_id=twitch_user_id,
            broadcaster_id=broadcaster_id,
            broadcaster_login=broadcaster_login,
        )
        job = await enqueue_job(self.session, JobType.FETCH_CHATTERS, payload.model_dump())
        await self.session.commit()
        return job

    async def save_active(self, user_id: int) -> Optional[AnalysisSession]:
        """Mark the active session ``saved``.  Returns ``None`` without one."""
        active = await self.get_active(user_id)
        if active is None:
            return None
        active.status = SessionStatus.SAVED
        await self.session.commit()
        logger.info("analysis_session_saved", session_uuid=active.session_uuid, user_id=user_id)
        return active

    async def _delete_captures(self, session_id: int) -> None:
        capture_ids = sa.select(Capture.id).where(Capture.session_id == session_id)
        await self.session.execute(
            sa.delete(CaptureChatter)
            .where(CaptureChatter.capture_id.in_(capture_ids))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            sa.delete(Capture)
            .where(Capture.session_id == session_id)
            .execution_options(synchronize_session=False)
        )

    async def purge_active(self, user_id: int) -> Optional[AnalysisSession]:
        """Remove the active session's captures and mark it ``deleted``.

        Returns:
            The purged session, or ``None`` if the user had no active session.
        """
        active = await self.get_active(user_id)
        if active is None:
            return None
        await self._delete_captures(active.id)
        active.status = SessionStatus.DELETED
        await self.session.commit()
        logger.info("analysis_session_purged", session_uuid=active.session_uuid, user_id=user_id)
        return active

    async def delete_saved(self, user_id: int, session_uuid: str) -> bool:
        """Delete a saved session with its captures.

        Returns:
            ``False`` if no saved session with that UUID belongs to the user.
        """
        saved = await self.get_owned(user_id, session_uuid, SessionStatus.SAVED)
        if saved is None:
            return False
        await self._delete_captures(saved.id)
        await self.session.delete(saved)
        await self.session.commit()
        logger.info("analysis_session_deleted", session_uuid=session_uuid, user_id=user_id)
        return True


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------


async def get_session_service(
    session: AsyncSession = Depends(get_db),
) -> AnalysisSessionService:
    """Return an :class:`AnalysisSessionService` bound to the request session."""
    return AnalysisSessionService(session=session)
