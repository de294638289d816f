"""HTTP client used by the worker to call the Twitch API proxy.

The proxy owns rate limiting and caching towards Helix; this client only
handles pagination, batching and the proxy's own 429 answers.  A 429 is
treated as transient: the client sleeps for a fixed interval and retries the
same page, up to ``max_rate_limit_retries`` consecutive times.  Any other
non-2xx answer raises :class:`ProxyRequestError` and fails the job.

Typical usage::

    client = TwitchProxyClient.from_settings(get_settings())
    try:
        ids = await client.fetch_all_chatters("42", "99", access_token)
    finally:
        await client.aclose()
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

import httpx
import structlog

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.exceptions import ProxyRateLimitError, ProxyRequestError
from chatter_observatory.core.schemas.twitch import HelixUser

logger = structlog.get_logger(__name__)


class TwitchProxyClient:
    """Thin async client for ``/chatters`` and ``/users`` on the proxy.

    Args:
        http: An ``httpx.AsyncClient`` whose ``base_url`` points at the proxy.
        rate_limit_sleep: Seconds to wait after a 429 before retrying.
        max_rate_limit_retries: Consecutive 429 answers tolerated per request.
        page_size: ``first`` parameter for ``/chatters``.
        page_delay: Pause between two ``/chatters`` pages.
        users_batch_size: Maximum IDs per ``/users`` request.
        users_batch_delay: Pause between two ``/users`` batches.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        rate_limit_sleep: float = 5.0,
        max_rate_limit_retries: int = 10,
        page_size: int = 1000,
        page_delay: float = 0.2,
        users_batch_size: int = 100,
        users_batch_delay: float = 0.1,
    ) -> None:
        self._http = http
        self._rate_limit_sleep = rate_limit_sleep
        self._max_rate_limit_retries = max_rate_limit_retries
        self._page_size = page_size
        self._page_delay = page_delay
        self._users_batch_size = users_batch_size
        self._users_batch_delay = users_batch_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwitchProxyClient":
        http = httpx.AsyncClient(
            base_url=settings.twitch_api_base_url,
            timeout=settings.proxy_request_timeout,
        )
        return cls(
            http,
            rate_limit_sleep=settings.proxy_rate_limit_sleep_seconds,
            max_rate_limit_retries=settings.proxy_max_rate_limit_retries,
            page_size=settings.chatters_page_size,
            page_delay=settings.chatters_page_delay,
            users_batch_size=settings.users_batch_size,
            users_batch_delay=settings.users_batch_delay,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _get(
        self,
        path: str,
        params: Any,
        access_token: str,
    ) -> dict[str, Any]:
        """GET ``path`` on the proxy, retrying the same request on 429.

        Raises:
            ProxyRateLimitError: After too many consecutive 429 answers.
            ProxyRequestError: On any other non-2xx status.
            httpx.HTTPError: On transport failures.
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        rate_limited = 0
        while True:
            response = await self._http.get(path, params=params, headers=headers)
            if response.status_code == 429:
                rate_limited += 1
                if rate_limited > self._max_rate_limit_retries:
                    raise ProxyRateLimitError(
                        f"proxy kept rate limiting {path} after "
                        f"{self._max_rate_limit_retries} retries",
                        retry_after=self._rate_limit_sleep,
                    )
                logger.warning(
                    "proxy_rate_limited",
                    endpoint=path,
                    attempt=rate_limited,
                    sleep_seconds=self._rate_limit_sleep,
                )
                await asyncio.sleep(self._rate_limit_sleep)
                continue
            if not response.is_success:
                raise ProxyRequestError(response.status_code, response.text, endpoint=path)
            return response.json()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_all_chatters(
        self,
        broadcaster_id: str,
        moderator_id: str,
        access_token: str,
    ) -> list[str]:
        """Return every chatter user ID of a channel, following the cursor.

        Args:
            broadcaster_id: Channel to read.
            moderator_id: Twitch ID of the token owner (broadcaster or moderator).
            access_token: User access token with ``moderator:read:chatters``.

        Returns:
            Chatter IDs in the order Helix returned them.
        """
        chatter_ids: list[str] = []
        cursor: str | None = None
        pages = 0
        while True:
            params: dict[str, Any] = {
                "broadcaster_id": broadcaster_id,
                "moderator_id": moderator_id,
                "first": self._page_size,
            }
            if cursor:
                params["after"] = cursor
            body = await self._get("/chatters", params, access_token)
            pages += 1
            for chatter in body.get("data") or []:
                user_id = chatter.get("user_id")
                if user_id:
                    chatter_ids.append(str(user_id))
            cursor = (body.get("pagination") or {}).get("cursor")
            if not cursor:
                break
            await asyncio.sleep(self._page_delay)

        logger.info(
            "chatters_fetched",
            broadcaster_id=broadcaster_id,
            pages=pages,
            chatters=len(chatter_ids),
        )
        return chatter_ids

    async def fetch_users(
        self,
        user_ids: Sequence[str],
        access_token: str,
    ) -> list[HelixUser]:
        """Return Helix user objects for ``user_ids``, batched by ``users_batch_size``."""
        users: list[HelixUser] = []
        step = self._users_batch_size
        for offset in range(0, len(user_ids), step):
            if offset:
                await asyncio.sleep(self._users_batch_delay)
            batch = user_ids[offset : offset + step]
            params = [("id", user_id) for user_id in batch]
            body = await self._get("/users", params, access_token)
            users.extend(HelixUser.model_validate(item) for item in body.get("data") or [])
        return users
