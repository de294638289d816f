"""Moderated-channel lookup through the Twitch API proxy."""

from __future__ import annotations

from typing import Any, Iterable

import httpx
import structlog
from pydantic import ValidationError

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.exceptions import ProxyRequestError
from chatter_observatory.core.schemas.twitch import ModeratedChannel

logger = structlog.get_logger(__name__)

_MAX_PAGES = 20


class ChannelsClient:
    """Lists the channels a user moderates, following the proxy's pagination.

    Args:
        http: ``httpx.AsyncClient`` whose ``base_url`` is the proxy root.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChannelsClient":
        http = httpx.AsyncClient(base_url=settings.gateway_proxy_base_url, timeout=15.0)
        return cls(http)

    async def moderated_channels(self, user_id: str, access_token: str) -> list[ModeratedChannel]:
        """Return every channel ``user_id`` moderates.

        Raises:
            ProxyRequestError: If the proxy answers with an error status or
                an unparseable body.
            httpx.HTTPError: On transport failures.
        """
        channels: list[ModeratedChannel] = []
        params: dict[str, Any] = {"user_id": user_id}
        headers = {"Authorization": f"Bearer {access_token}"}
        for _ in range(_MAX_PAGES):
            response = await self._http.get("/moderated-channels", params=params, headers=headers)
            if response.is_error:
                raise ProxyRequestError(
                    response.status_code, response.text, endpoint="/moderated-channels"
                )
            try:
                body = response.json()
                channels.extend(ModeratedChannel.model_validate(item) for item in body.get("data") or [])
            except (ValueError, ValidationError) as exc:
                raise ProxyRequestError(
                    response.status_code, "invalid body", endpoint="/moderated-channels"
                ) from exc
            cursor = (body.get("pagination") or {}).get("cursor")
            if not cursor:
                break
            params["after"] = cursor
        return channels

    async def aclose(self) -> None:
        await self._http.aclose()


def build_channel_list(
    own_channel: ModeratedChannel, moderated: Iterable[ModeratedChannel]
) -> list[ModeratedChannel]:
    """Own channel first, then moderated channels, without duplicate broadcaster IDs."""
    seen = {own_channel.broadcaster_id}
    channels = [own_channel]
    for channel in moderated:
        if channel.broadcaster_id in seen:
            continue
        seen.add(channel.broadcaster_id)
        channels.append(channel)
    return channels
