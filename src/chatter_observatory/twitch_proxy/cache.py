"""Time-to-live in-memory cache for proxy responses.

Entries expire lazily on read and eagerly through :meth:`TTLCache.sweep`,
which the proxy app runs periodically via :meth:`TTLCache.run_sweeper`.
All access goes through one ``asyncio.Lock`` because concurrent request
handlers share the instance stored on ``app.state``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class TTLCache:
    """Mapping of string keys to values with a per-entry expiry.

    Args:
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` if absent or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl: float) -> None:  # noqa: ANN401
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        if ttl <= 0:
            return
        async with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    async def sweep(self) -> int:
        """Evict every expired entry.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            now = self._clock()
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    async def run_sweeper(self, interval: float) -> None:
        """Sweep every ``interval`` seconds until the task is cancelled."""
        while True:
            await asyncio.sleep(interval)
            removed = await self.sweep()
            if removed:
                logger.debug("cache_swept", removed=removed, remaining=len(self))
