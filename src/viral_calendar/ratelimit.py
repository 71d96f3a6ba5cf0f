"""Request pacing for upstream APIs."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Leaky bucket of capacity one for a single upstream source.

    Usage::

        async with limiter:
            await client.get(...)

    At most one request is inside the block at a time, and a request never
    starts earlier than ``interval`` seconds after the previous one finished.
    Clock and sleep are injectable so pacing can be tested without waiting.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._next_allowed: Optional[float] = None

    @classmethod
    def from_millis(cls, delay_ms: int, **kwargs) -> "RateLimiter":
        return cls(delay_ms / 1000.0, **kwargs)

    async def __aenter__(self) -> "RateLimiter":
        await self._lock.acquire()
        try:
            if self._next_allowed is not None:
                wait = self._next_allowed - self._clock()
                if wait > 0:
                    logger.debug(f"Rate limiter waiting {wait:.2f}s")
                    await self._sleep(wait)
        except BaseException:
            self._lock.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._next_allowed = self._clock() + self.interval
        self._lock.release()
        return False

    def reset(self) -> None:
        """Forget the previous request so the next one starts immediately."""
        self._next_allowed = None
