"""In-process token bucket shared by every outbound Helix call of the proxy.

The bucket refills continuously at ``rate`` tokens per second up to
``capacity``.  Callers wait for a token instead of failing fast; the wait is
an ordinary ``asyncio.sleep`` so cancelling the calling task (client
disconnect, request timeout) abandons it cleanly.

Typical usage::

    limiter = TokenBucket.per_minute(600, burst=20)

    if not await limiter.acquire(timeout=10.0):
        raise HTTPException(429, "rate limit exceeded")
    response = await helix.get(...)

One instance is created per application and stored on ``app.state``; it is
never a module-level singleton.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class TokenBucket:
    """Async token bucket guarded by an ``asyncio.Lock``.

    Attributes:
        rate: Tokens added per second.
        capacity: Maximum number of stored tokens (burst size).
        clock: Monotonic time source; injectable for tests.
    """

    rate: float
    capacity: float
    clock: Callable[[], float] = time.monotonic
    _tokens: float = field(init=False, repr=False)
    _updated_at: float = field(init=False, repr=False)
    _lock: asyncio.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._tokens = float(self.capacity)
        self._updated_at = self.clock()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int, burst: int) -> "TokenBucket":
        """Build a bucket from a requests-per-minute budget."""
        return cls(rate=requests_per_minute / 60.0, capacity=burst)

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated_at = now

    @property
    def available(self) -> float:
        """Tokens available right now (read-only; does not consume)."""
        elapsed = max(0.0, self.clock() - self._updated_at)
        return min(float(self.capacity), self._tokens + elapsed * self.rate)

    async def try_acquire(self) -> bool:
        """Take one token if one is available, without waiting."""
        async with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    async def _acquire_forever(self) -> None:
        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self.rate
            await asyncio.sleep(wait)

    async def acquire(self, timeout: Optional[float] = None) -> bool:
        """Wait for a token.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits indefinitely.

        Returns:
            ``True`` once a token was taken, ``False`` if ``timeout`` elapsed
            first (no token is consumed in that case).
        """
        if timeout is None:
            await self._acquire_forever()
            return True
        try:
            await asyncio.wait_for(self._acquire_forever(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
