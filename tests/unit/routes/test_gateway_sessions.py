"""Route tests for the gateway's pages and analysis-session controls.

Tests cover:
- anonymous requests to protected pages redirect to /auth/login
- an expired web session counts as anonymous
- GET / renders for anonymous and logged-in users
- GET /channels lists the own channel first, then deduplicated moderated channels
- GET /channels still renders the own channel when the proxy fails
- POST /sessions/capture creates the active session and enqueues FETCH_CHATTERS
- a second capture reuses the same active session
- POST /sessions/capture without broadcaster fields is rejected with 400
- POST /sessions/save, /sessions/purge and /sessions/delete transitions and redirects
- GET /sessions lists saved sessions only
- GET /accounts/{id}/history renders the rename log and 404s for unknown accounts
- GET /health and GET /healthz
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
import sqlalchemy as sa
from httpx import ASGITransport, AsyncClient

from chatter_observatory.core.models import (
    AnalysisSession,
    Capture,
    CaptureChatter,
    Job,
    JobStatus,
    JobType,
    SessionStatus,
    TwitchUser,
    TwitchUserName,
    utcnow,
)
from tests.factories.users import create_logged_in_user

PROXY = "http://proxy.test"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _sessions(session_factory, user_id: int) -> list[AnalysisSession]:
    async with session_factory() as db:
        stmt = sa.select(AnalysisSession).where(AnalysisSession.user_id == user_id)
        return list((await db.execute(stmt)).scalars())


async def _add_session(session_factory, user_id: int, uuid: str, status: str, chatters=()) -> int:
    async with session_factory() as db:
        session = AnalysisSession(session_uuid=uuid, user_id=user_id, status=status)
        db.add(session)
        await db.flush()
        if chatters:
            capture = Capture(
                session_id=session.id,
                broadcaster_id="42",
                broadcaster_login="alpha",
                captured_at=utcnow(),
                chatters_count=len(chatters),
            )
            db.add(capture)
            await db.flush()
            db.add_all(CaptureChatter(capture_id=capture.id, twitch_user_id=uid) for uid in chatters)
        await db.commit()
        return session.id


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return (await db.execute(sa.select(sa.func.count()).select_from(model))).scalar_one()


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------


class TestLoginGate:
    @pytest.mark.asyncio
    async def test_anonymous_channels_redirects_to_login(self, anonymous_client) -> None:
        response = await anonymous_client.get("/channels")

        assert response.status_code == 302
        assert response.headers["location"] == "/auth/login"

    @pytest.mark.asyncio
    async def test_anonymous_capture_redirects_to_login(self, anonymous_client) -> None:
        response = await anonymous_client.post(
            "/sessions/capture", data={"broadcaster_id": "42", "broadcaster_login": "alpha"}
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/auth/login"

    @pytest.mark.asyncio
    async def test_expired_session_is_anonymous(self, gateway_app, session_factory) -> None:
        expired = await create_logged_in_user(
            session_factory, session_id="e" * 32, expires_in=timedelta(hours=-1)
        )
        transport = ASGITransport(app=gateway_app)
        async with AsyncClient(
            transport=transport,
            base_url="http://test",
            cookies={"tca_session": expired.session_id},
        ) as client:
            response = await client.get("/sessions")

        assert response.status_code == 302

    @pytest.mark.asyncio
    async def test_index_renders_for_anonymous(self, anonymous_client) -> None:
        response = await anonymous_client.get("/")

        assert response.status_code == 200
        assert "Log in with Twitch" in response.text

    @pytest.mark.asyncio
    async def test_index_renders_for_user(self, gateway_client) -> None:
        response = await gateway_client.get("/?logged_out=0")

        assert response.status_code == 200
        assert "Moderator_One" in response.text


# ---------------------------------------------------------------------------
# Channels page
# ---------------------------------------------------------------------------


class TestChannelsPage:
    @pytest.mark.asyncio
    async def test_own_channel_first_and_moderated_deduplicated(self, gateway_client) -> None:
        pages = [
            {
                "data": [
                    {"broadcaster_id": "42", "broadcaster_login": "alpha", "broadcaster_name": "Alpha"},
                    {"broadcaster_id": "99", "broadcaster_login": "moderator_one"},
                ],
                "pagination": {"cursor": "p2"},
            },
            {
                "data": [{"broadcaster_id": "43", "broadcaster_login": "beta"}],
                "pagination": {},
            },
        ]

        with respx.mock() as mock:
            route = mock.get(f"{PROXY}/moderated-channels").mock(
                side_effect=[httpx.Response(200, json=page) for page in pages]
            )
            response = await gateway_client.get("/channels")

        assert response.status_code == 200
        text = response.text
        assert text.index('value="99"') < text.index('value="42"') < text.index('value="43"')
        assert text.count('name="broadcaster_id" value="99"') == 1
        assert route.calls.last.request.url.params["after"] == "p2"
        assert route.calls[0].request.headers["Authorization"] == "Bearer user-access-token"

    @pytest.mark.asyncio
    async def test_proxy_failure_shows_own_channel(self, gateway_client) -> None:
        with respx.mock() as mock:
            mock.get(f"{PROXY}/moderated-channels").mock(return_value=httpx.Response(502))
            response = await gateway_client.get("/channels")

        assert response.status_code == 200
        assert 'name="broadcaster_id" value="99"' in response.text


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class TestCapture:
    @pytest.mark.asyncio
    async def test_capture_creates_session_and_job(
        self, gateway_client, session_factory, seeded_user
    ) -> None:
        response = await gateway_client.post(
            "/sessions/capture", data={"broadcaster_id": "42", "broadcaster_login": "alpha"}
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/channels?capture_enqueued=1"
        (active,) = await _sessions(session_factory, seeded_user.id)
        assert active.status == SessionStatus.ACTIVE
        assert len(active.session_uuid) == 32
        async with session_factory() as db:
            (job,) = (await db.execute(sa.select(Job))).scalars()
        assert job.type == JobType.FETCH_CHATTERS
        assert job.status == JobStatus.PENDING
        assert job.payload == {
            "session_id": active.id,
            "twitch_user_id": "99",
            "broadcaster_id": "42",
            "broadcaster_login": "alpha",
        }

    @pytest.mark.asyncio
    async def test_second_capture_reuses_active_session(
        self, gateway_client, session_factory, seeded_user
    ) -> None:
        for broadcaster in ("42", "43"):
            await gateway_client.post(
                "/sessions/capture",
                data={"broadcaster_id": broadcaster, "broadcaster_login": f"c{broadcaster}"},
            )

        assert len(await _sessions(session_factory, seeded_user.id)) == 1
        assert await _count(session_factory, Job) == 2

    @pytest.mark.asyncio
    async def test_missing_broadcaster_is_400(self, gateway_client, session_factory) -> None:
        response = await gateway_client.post("/sessions/capture", data={"broadcaster_id": "42"})

        assert response.status_code == 400
        assert await _count(session_factory, Job) == 0


# ---------------------------------------------------------------------------
# Save / purge / delete
# ---------------------------------------------------------------------------


class TestSessionTransitions:
    @pytest.mark.asyncio
    async def test_save_active_session(self, gateway_client, session_factory, seeded_user) -> None:
        await _add_session(session_factory, seeded_user.id, "a1" * 16, SessionStatus.ACTIVE)

        response = await gateway_client.post("/sessions/save")

        assert response.status_code == 303
        assert response.headers["location"] == "/sessions?saved=1"
        (session,) = await _sessions(session_factory, seeded_user.id)
        assert session.status == SessionStatus.SAVED

    @pytest.mark.asyncio
    async def test_save_without_active_session(self, gateway_client) -> None:
        response = await gateway_client.post("/sessions/save")

        assert response.status_code == 303
        assert response.headers["location"] == "/analysis?save_no_session=1"

    @pytest.mark.asyncio
    async def test_purge_removes_captures_and_marks_deleted(
        self, gateway_client, session_factory, seeded_user
    ) -> None:
        await _add_session(
            session_factory, seeded_user.id, "b2" * 16, SessionStatus.ACTIVE, chatters=["1", "2"]
        )

        response = await gateway_client.post("/sessions/purge")

        assert response.headers["location"] == "/channels?purged=1"
        (session,) = await _sessions(session_factory, seeded_user.id)
        assert session.status == SessionStatus.DELETED
        assert await _count(session_factory, Capture) == 0
        assert await _count(session_factory, CaptureChatter) == 0

    @pytest.mark.asyncio
    async def test_purge_without_active_session(self, gateway_client) -> None:
        response = await gateway_client.post("/sessions/purge")

        assert response.headers["location"] == "/channels?purge_no_session=1"

    @pytest.mark.asyncio
    async def test_delete_saved_session(self, gateway_client, session_factory, seeded_user) -> None:
        await _add_session(
            session_factory, seeded_user.id, "c3" * 16, SessionStatus.SAVED, chatters=["1"]
        )

        response = await gateway_client.post("/sessions/delete", data={"session_uuid": "c3" * 16})

        assert response.headers["location"] == "/sessions?deleted=1"
        assert await _sessions(session_factory, seeded_user.id) == []
        assert await _count(session_factory, Capture) == 0

    @pytest.mark.asyncio
    async def test_delete_active_session_is_not_found(
        self, gateway_client, session_factory, seeded_user
    ) -> None:
        """Only saved sessions can be deleted through this route."""
        await _add_session(session_factory, seeded_user.id, "d4" * 16, SessionStatus.ACTIVE)

        response = await gateway_client.post("/sessions/delete", data={"session_uuid": "d4" * 16})

        assert response.headers["location"] == "/sessions?delete_not_found=1"
        assert len(await _sessions(session_factory, seeded_user.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_other_users_session_is_not_found(
        self, gateway_client, session_factory
    ) -> None:
        other = await create_logged_in_user(
            session_factory, twitch_user_id="7", login="other", session_id="f" * 32
        )
        await _add_session(session_factory, other.id, "e5" * 16, SessionStatus.SAVED)

        response = await gateway_client.post("/sessions/delete", data={"session_uuid": "e5" * 16})

        assert response.headers["location"] == "/sessions?delete_not_found=1"
        assert len(await _sessions(session_factory, other.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_without_uuid_is_400(self, gateway_client) -> None:
        response = await gateway_client.post("/sessions/delete", data={})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_sessions_page_lists_saved_only(
        self, gateway_client, session_factory, seeded_user
    ) -> None:
        await _add_session(session_factory, seeded_user.id, "f6" * 16, SessionStatus.SAVED)
        await _add_session(session_factory, seeded_user.id, "a7" * 16, SessionStatus.ACTIVE)

        response = await gateway_client.get("/sessions")

        assert response.status_code == 200
        assert "/analysis/saved/" + "f6" * 16 in response.text
        assert "/analysis/saved/" + "a7" * 16 not in response.text


# ---------------------------------------------------------------------------
# Account history
# ---------------------------------------------------------------------------


class TestAccountHistory:
    @pytest.mark.asyncio
    async def test_history_lists_renames(self, gateway_client, session_factory) -> None:
        async with session_factory() as db:
            db.add(TwitchUser(twitch_user_id="1", login="newest", display_name="Newest", last_fetched_at=utcnow()))
            db.add(
                TwitchUserName(
                    twitch_user_id="1",
                    previous_login="oldest",
                    login="newest",
                    detected_at=utcnow(),
                )
            )
            await db.commit()

        response = await gateway_client.get("/accounts/1/history")

        assert response.status_code == 200
        assert "oldest" in response.text
        assert "Newest" in response.text

    @pytest.mark.asyncio
    async def test_unknown_account_is_404(self, gateway_client) -> None:
        response = await gateway_client.get("/accounts/404/history")

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestGatewayHealth:
    @pytest.mark.asyncio
    async def test_health_is_always_ok(self, anonymous_client) -> None:
        response = await anonymous_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_healthz_with_reachable_database(self, anonymous_client, session_factory) -> None:
        with patch("chatter_observatory.gateway.routes.health.AsyncSessionLocal", session_factory):
            response = await anonymous_client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["database"] == "ok"

    @pytest.mark.asyncio
    async def test_healthz_with_unreachable_database(self, anonymous_client) -> None:
        broken_session = MagicMock()
        broken_session.__aenter__ = AsyncMock(side_effect=ConnectionRefusedError("down"))
        broken_session.__aexit__ = AsyncMock(return_value=False)
        broken_factory = MagicMock(return_value=broken_session)

        with patch("chatter_observatory.gateway.routes.health.AsyncSessionLocal", broken_factory):
            response = await anonymous_client.get("/healthz")

        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "database": "error"}
