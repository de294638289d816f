"""Twitch OAuth authorization-code client used by the login routes.

Covers the three identity-provider calls the gateway makes directly
(authorize URL, code exchange, token revocation) plus the Helix ``users``
lookup that identifies the freshly authenticated account.  Every other
Helix call goes through the Twitch API proxy.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.exceptions import TwitchAuthError
from chatter_observatory.core.schemas.twitch import HelixUser

logger = structlog.get_logger(__name__)

OAUTH_SCOPES = ("user:read:moderated_channels", "moderator:read:chatters")


class OAuthToken(BaseModel):
    """Body of a successful ``POST /oauth2/token`` response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: list[str] = Field(default_factory=list)
    token_type: str = "bearer"


class TwitchOAuthClient:
    """Thin async wrapper over the Twitch identity endpoints.

    Args:
        http: Shared ``httpx.AsyncClient``.
        client_id: Twitch application client ID.
        client_secret: Twitch application client secret.
        redirect_url: Registered OAuth redirect URL (``/auth/callback``).
        auth_base_url: Root of the identity API (``https://id.twitch.tv/oauth2``).
        helix_base_url: Root of the Helix API.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        auth_base_url: str,
        helix_base_url: str,
    ) -> None:
        self._http = http
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_url = redirect_url
        self._auth_base_url = auth_base_url.rstrip("/")
        self._helix_base_url = helix_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwitchOAuthClient":
        return cls(
            httpx.AsyncClient(timeout=15.0),
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
            redirect_url=settings.twitch_redirect_url,
            auth_base_url=settings.twitch_auth_base_url,
            helix_base_url=settings.helix_base_url,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.redirect_url)

    def authorize_url(self, state: str) -> str:
        """Build the ``/authorize`` URL the browser is redirected to."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": " ".join(OAUTH_SCOPES),
            "state": state,
        }
        return f"{self._auth_base_url}/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> OAuthToken:
        """Trade an authorization code for user tokens.

        Raises:
            TwitchAuthError: On transport errors, non-2xx answers or an
                unparseable body.
        """
        if not self.client_id or not self._client_secret:
            raise TwitchAuthError("Twitch client credentials are not configured")
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_url,
        }
        try:
            response = await self._http.post(f"{self._auth_base_url}/token", data=data)
        except httpx.HTTPError as exc:
            raise TwitchAuthError(f"token request failed: {exc}") from exc
        if response.is_error:
            raise TwitchAuthError(f"token endpoint returned {response.status_code}")
        try:
            return OAuthToken.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TwitchAuthError("token endpoint returned an invalid body") from exc

    async def fetch_user(self, access_token: str) -> HelixUser:
        """Return the Helix user that owns ``access_token``.

        Raises:
            TwitchAuthError: If the lookup fails or returns no user.
        """
        headers = {"Client-Id": self.client_id, "Authorization": f"Bearer {access_token}"}
        try:
            response = await self._http.get(f"{self._helix_base_url}/users", headers=headers)
        except httpx.HTTPError as exc:
            raise TwitchAuthError(f"users request failed: {exc}") from exc
        if response.is_error:
            raise TwitchAuthError(f"users endpoint returned {response.status_code}")
        try:
            data = response.json().get("data") or []
            if not data:
                raise TwitchAuthError("users endpoint returned no user")
            return HelixUser.model_validate(data[0])
        except (ValueError, ValidationError) as exc:
            raise TwitchAuthError("users endpoint returned an invalid body") from exc

    async def revoke(self, access_token: str) -> None:
        """Revoke a user token.

        Raises:
            TwitchAuthError: If Twitch does not confirm the revocation.
        """
        data = {"client_id": self.client_id, "token": access_token}
        try:
            response = await self._http.post(f"{self._auth_base_url}/revoke", data=data)
        except httpx.HTTPError as exc:
            raise TwitchAuthError(f"revoke request failed: {exc}") from exc
        if response.is_error:
            raise TwitchAuthError(f"revoke endpoint returned {response.status_code}")

    async def aclose(self) -> None:
        await self._http.aclose()
