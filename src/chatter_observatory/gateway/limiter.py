"""Shared slowapi rate-limiter singleton.

Kept in its own module so route modules can import it without importing
``main.py`` (which imports every route module).

Usage in route modules::

    from chatter_observatory.gateway.limiter import export_limit, limiter

    @router.get("/analysis/export")
    @limiter.limit(export_limit)
    async def export_active_session(request: Request, ...):
        ...

The ``request`` parameter **must** be present in the route function
signature for slowapi to resolve the rate-limit key.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from chatter_observatory.config.settings import get_settings

limiter: Limiter = Limiter(key_func=get_remote_address)
"""Per-client-IP limiter attached to ``app.state`` in ``main.create_app()``."""


def export_limit() -> str:
    """Return the configured export limit (e.g. ``"30/minute"``).

    slowapi evaluates the callable per request, so the limit follows the
    current settings instead of the value at import time.
    """
    return get_settings().export_rate_limit
