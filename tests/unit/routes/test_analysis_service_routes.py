"""Route tests for the analysis service.

Tests cover:
- GET /sessions/{uuid}/summary returns the summary JSON
- the ``broadcaster_id`` CSV filter is applied
- the suspicious rename threshold is read from the service settings
- unknown sessions return 404
- a failing aggregate query returns 500
- GET /healthz returns 200 with a reachable database and 503 otherwise
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from chatter_observatory.analysis.main import create_app
from chatter_observatory.config.settings import get_settings
from chatter_observatory.core.database import get_db
from chatter_observatory.core.models import (
    AnalysisSession,
    Capture,
    CaptureChatter,
    SessionStatus,
    TwitchUser,
    TwitchUserName,
    User,
    utcnow,
)

SESSION_UUID = "c" * 32


async def _seed(session_factory) -> None:
    async with session_factory() as db:
        owner = User(twitch_user_id="99", login="owner", display_name="Owner")
        db.add(owner)
        await db.flush()
        session = AnalysisSession(
            session_uuid=SESSION_UUID, user_id=owner.id, status=SessionStatus.SAVED
        )
        db.add(session)
        await db.flush()
        for broadcaster_id, chatters in (("42", ["1", "2"]), ("43", ["2", "3", "4"])):
            capture = Capture(
                session_id=session.id,
                broadcaster_id=broadcaster_id,
                broadcaster_login=f"channel_{broadcaster_id}",
                captured_at=utcnow(),
                chatters_count=len(chatters),
            )
            db.add(capture)
            await db.flush()
            db.add_all(CaptureChatter(capture_id=capture.id, twitch_user_id=uid) for uid in chatters)
        await db.commit()


async def _seed_one_rename(session_factory) -> None:
    """Chatter "2" is known with a single recorded rename."""
    async with session_factory() as db:
        now = utcnow()
        db.add(TwitchUser(twitch_user_id="2", login="renamed", last_fetched_at=now))
        db.add(
            TwitchUserName(
                twitch_user_id="2",
                previous_login="original",
                login="renamed",
                detected_at=now,
            )
        )
        await db.commit()


def _make_app(session_factory, settings):
    application = create_app(settings)

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _override_get_db
    return application


@pytest.fixture
def analysis_app(session_factory):
    application = _make_app(session_factory, get_settings())
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(analysis_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=analysis_app), base_url="http://test") as c:
        yield c


class TestSessionSummaryRoute:
    @pytest.mark.asyncio
    async def test_summary_of_whole_session(self, client, session_factory) -> None:
        await _seed(session_factory)

        response = await client.get(f"/sessions/{SESSION_UUID}/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["session_uuid"] == SESSION_UUID
        assert body["total_accounts"] == 4
        assert {b["broadcaster_id"] for b in body["broadcasters"]} == {"42", "43"}
        assert body["suspicious_renames_count"] == 0
        assert "generated_at" in body

    @pytest.mark.asyncio
    async def test_broadcaster_filter(self, client, session_factory) -> None:
        await _seed(session_factory)

        response = await client.get(
            f"/sessions/{SESSION_UUID}/summary", params={"broadcaster_id": " 42 ,"}
        )

        assert response.status_code == 200
        assert response.json()["total_accounts"] == 2

    @pytest.mark.asyncio
    async def test_rename_threshold_comes_from_settings(self, client, session_factory) -> None:
        """One rename stays below the default threshold but meets a threshold of 1."""
        await _seed(session_factory)
        await _seed_one_rename(session_factory)
        strict = _make_app(
            session_factory,
            get_settings().model_copy(update={"suspicious_rename_threshold": 1}),
        )

        default_response = await client.get(f"/sessions/{SESSION_UUID}/summary")
        async with AsyncClient(transport=ASGITransport(app=strict), base_url="http://test") as c:
            strict_response = await c.get(f"/sessions/{SESSION_UUID}/summary")

        assert default_response.json()["suspicious_renames_count"] == 0
        body = strict_response.json()
        assert body["suspicious_renames_count"] == 1
        assert body["suspicious_accounts"][0]["login"] == "renamed"
        assert body["suspicious_accounts"][0]["rename_count"] == 1

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, client) -> None:
        response = await client.get("/sessions/nope/summary")

        assert response.status_code == 404
        assert response.json()["detail"] == "session not found"

    @pytest.mark.asyncio
    async def test_query_failure_is_500(self, client) -> None:
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))
        with patch("chatter_observatory.analysis.routes.build_session_summary", failing):
            response = await client.get(f"/sessions/{SESSION_UUID}/summary")

        assert response.status_code == 500
        assert response.json()["detail"] == "failed to build summary"


class TestAnalysisHealth:
    @pytest.mark.asyncio
    async def test_healthy_database(self, client) -> None:
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok"}

    @pytest.mark.asyncio
    async def test_unreachable_database_is_503(self, analysis_app, client) -> None:
        broken = MagicMock()
        broken.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))

        async def _broken_db():
            yield broken

        analysis_app.dependency_overrides[get_db] = _broken_db
        response = await client.get("/healthz")

        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "database": "error"}
