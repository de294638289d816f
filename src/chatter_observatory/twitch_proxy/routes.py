"""Route handlers of the Twitch API proxy.

Endpoints::

    GET /chatters            → helix/chat/chatters          (never cached)
    GET /users               → helix/users                  (cached, users_cache_ttl)
    GET /moderated-channels  → helix/moderation/channels    (cached, moderated_channels_cache_ttl)
    GET /healthz

Every Helix endpoint requires a user access token, taken from an
``Authorization: Bearer`` header or, failing that, from an ``access_token``
query parameter.  Upstream status codes and bodies pass through unchanged;
cacheable endpoints add ``X-Cache: HIT`` or ``X-Cache: MISS``.  Only 200
answers are cached.

Each request first waits for a token of the shared :class:`TokenBucket`; a
request that cannot get one within ``rate_limit_wait_timeout`` receives 429.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.metrics import (
    proxy_cache_lookups_total,
    proxy_rate_limit_rejections_total,
    proxy_upstream_requests_total,
)
from chatter_observatory.twitch_proxy.cache import TTLCache
from chatter_observatory.twitch_proxy.helix import HelixClient
from chatter_observatory.twitch_proxy.rate_limiter import TokenBucket

logger = structlog.get_logger(__name__)

router = APIRouter()

_MAX_USER_IDS = 100


@dataclass(frozen=True)
class CachedResponse:
    """Upstream answer kept in the cache and replayed on hits."""

    status_code: int
    body: bytes
    media_type: str


# ---------------------------------------------------------------------------
# Dependencies (state owned by the app instance)
# ---------------------------------------------------------------------------


def get_proxy_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_limiter(request: Request) -> TokenBucket:
    return request.app.state.limiter


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_helix(request: Request) -> HelixClient:
    return request.app.state.helix


def get_access_token(
    request: Request,
    access_token: Optional[str] = Query(default=None),
) -> str:
    """Resolve the caller's Twitch user token (bearer header first)."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    if access_token:
        return access_token
    raise HTTPException(status_code=400, detail="missing access_token")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _forward(
    endpoint: str,
    helix_path: str,
    params: Any,  # noqa: ANN401
    access_token: str,
    *,
    limiter: TokenBucket,
    helix: HelixClient,
    settings: Settings,
) -> CachedResponse:
    """Wait for a rate-limit token, then call Helix."""
    if not await limiter.acquire(timeout=settings.rate_limit_wait_timeout):
        proxy_rate_limit_rejections_total.inc()
        logger.warning("rate_limit_exceeded", endpoint=endpoint)
        raise HTTPException(status_code=429, detail="rate limit exceeded")

    try:
        upstream = await helix.get(helix_path, params, access_token)
    except httpx.HTTPError as exc:
        proxy_upstream_requests_total.labels(endpoint=endpoint, status="error").inc()
        logger.warning("helix_request_failed", endpoint=endpoint, error=str(exc))
        raise HTTPException(status_code=502, detail="upstream request failed") from exc

    proxy_upstream_requests_total.labels(
        endpoint=endpoint, status=str(upstream.status_code)
    ).inc()
    if upstream.status_code >= 400:
        logger.info("helix_error_status", endpoint=endpoint, status_code=upstream.status_code)
    return CachedResponse(
        status_code=upstream.status_code,
        body=upstream.content,
        media_type=upstream.headers.get("content-type", "application/json"),
    )


def _to_response(cached: CachedResponse, cache_status: Optional[str] = None) -> Response:
    response = Response(
        content=cached.body,
        status_code=cached.status_code,
        media_type=cached.media_type,
    )
    if cache_status is not None:
        response.headers["X-Cache"] = cache_status
    return response


async def _cached_forward(
    endpoint: str,
    cache_key: str,
    ttl: float,
    helix_path: str,
    params: Any,  # noqa: ANN401
    access_token: str,
    *,
    cache: TTLCache,
    limiter: TokenBucket,
    helix: HelixClient,
    settings: Settings,
) -> Response:
    hit = await cache.get(cache_key)
    if hit is not None:
        proxy_cache_lookups_total.labels(endpoint=endpoint, result="hit").inc()
        return _to_response(hit, "HIT")

    proxy_cache_lookups_total.labels(endpoint=endpoint, result="miss").inc()
    fresh = await _forward(
        endpoint,
        helix_path,
        params,
        access_token,
        limiter=limiter,
        helix=helix,
        settings=settings,
    )
    if fresh.status_code == 200:
        await cache.set(cache_key, fresh, ttl)
    return _to_response(fresh, "MISS")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/chatters")
async def get_chatters(
    broadcaster_id: Optional[str] = Query(default=None),
    moderator_id: Optional[str] = Query(default=None),
    first: int = Query(default=1000, ge=1, le=1000),
    after: Optional[str] = Query(default=None),
    access_token: str = Depends(get_access_token),
    limiter: TokenBucket = Depends(get_limiter),
    helix: HelixClient = Depends(get_helix),
    settings: Settings = Depends(get_proxy_settings),
) -> Response:
    """Proxy one page of ``chat/chatters``.  Live data: never cached.

    Args:
        broadcaster_id: Channel whose chatters are listed.
        moderator_id: Token owner; must moderate (or be) the broadcaster.
        first: Page size, at most 1000.
        after: Opaque pagination cursor from the previous page.
    """
    if not broadcaster_id or not moderator_id:
        raise HTTPException(status_code=400, detail="broadcaster_id and moderator_id are required")

    params: dict[str, Any] = {
        "broadcaster_id": broadcaster_id,
        "moderator_id": moderator_id,
        "first": first,
    }
    if after:
        params["after"] = after
    upstream = await _forward(
        "chatters",
        "chat/chatters",
        params,
        access_token,
        limiter=limiter,
        helix=helix,
        settings=settings,
    )
    return _to_response(upstream)


@router.get("/users")
async def get_users(
    id: list[str] = Query(default=[]),  # noqa: A002
    access_token: str = Depends(get_access_token),
    cache: TTLCache = Depends(get_cache),
    limiter: TokenBucket = Depends(get_limiter),
    helix: HelixClient = Depends(get_helix),
    settings: Settings = Depends(get_proxy_settings),
) -> Response:
    """Proxy ``users`` for 1 to 100 IDs, cached by the sorted ID set."""
    user_ids = [user_id for user_id in id if user_id]
    if not user_ids:
        raise HTTPException(status_code=400, detail="at least one id is required")
    if len(user_ids) > _MAX_USER_IDS:
        raise HTTPException(status_code=400, detail=f"at most {_MAX_USER_IDS} ids per request")

    cache_key = "users:" + ",".join(sorted(set(user_ids)))
    return await _cached_forward(
        "users",
        cache_key,
        settings.users_cache_ttl,
        "users",
        [("id", user_id) for user_id in user_ids],
        access_token,
        cache=cache,
        limiter=limiter,
        helix=helix,
        settings=settings,
    )


@router.get("/moderated-channels")
async def get_moderated_channels(
    user_id: Optional[str] = Query(default=None),
    after: Optional[str] = Query(default=None),
    access_token: str = Depends(get_access_token),
    cache: TTLCache = Depends(get_cache),
    limiter: TokenBucket = Depends(get_limiter),
    helix: HelixClient = Depends(get_helix),
    settings: Settings = Depends(get_proxy_settings),
) -> Response:
    """Proxy ``moderation/channels`` for ``user_id``, cached per user and cursor."""
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")

    params: dict[str, Any] = {"user_id": user_id, "first": 100}
    cache_key = f"moderated_channels:{user_id}"
    if after:
        params["after"] = after
        cache_key += f":{after}"
    return await _cached_forward(
        "moderated_channels",
        cache_key,
        settings.moderated_channels_cache_ttl,
        "moderation/channels",
        params,
        access_token,
        cache=cache,
        limiter=limiter,
        helix=helix,
        settings=settings,
    )


@router.get("/healthz", tags=["system"])
async def healthz(
    cache: TTLCache = Depends(get_cache),
    limiter: TokenBucket = Depends(get_limiter),
) -> JSONResponse:
    """Liveness: never touches the upstream API, never returns 5xx."""
    return JSONResponse(
        {
            "status": "ok",
            "cache_entries": len(cache),
            "tokens_available": round(limiter.available, 2),
        }
    )
