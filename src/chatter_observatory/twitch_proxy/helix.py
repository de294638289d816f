"""Upstream Helix HTTP client used by the proxy routes."""

from __future__ import annotations

from typing import Any

import httpx

from chatter_observatory.config.settings import Settings


class HelixClient:
    """Sends authenticated GET requests to the Twitch Helix API.

    Every request carries the application ``Client-Id`` and the caller's user
    access token.  Responses are returned as-is; the routes decide how to
    pass them through.

    Args:
        http: ``httpx.AsyncClient`` whose ``base_url`` is the Helix root.
        client_id: Twitch application client ID.
    """

    def __init__(self, http: httpx.AsyncClient, client_id: str) -> None:
        self._http = http
        self._client_id = client_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "HelixClient":
        http = httpx.AsyncClient(base_url=settings.helix_base_url, timeout=15.0)
        return cls(http, settings.twitch_client_id)

    async def get(self, path: str, params: Any, access_token: str) -> httpx.Response:  # noqa: ANN401
        """GET ``path`` (relative to the Helix root) with ``params``.

        Raises:
            httpx.HTTPError: On transport failures.
        """
        headers = {
            "Client-Id": self._client_id,
            "Authorization": f"Bearer {access_token}",
        }
        return await self._http.get(path, params=params, headers=headers)

    async def aclose(self) -> None:
        await self._http.aclose()
