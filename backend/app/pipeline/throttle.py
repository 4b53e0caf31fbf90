from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


class Throttle:
    """Keeps at least ``request_delay`` seconds between calls to one provider."""

    def __init__(
        self,
        request_delay: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.request_delay = request_delay
        self.clock = clock
        self.sleep = sleep
        self.last_request_time: float | None = None
        self._lock = asyncio.Lock()

    def remaining(self) -> float:
        if self.last_request_time is None:
            return 0.0
        elapsed = self.clock() - self.last_request_time
        return max(0.0, self.request_delay - elapsed)

    async def acquire(self) -> None:
        async with self._lock:
            wait = self.remaining()
            if wait > 0:
                await self.sleep(wait)
            self.last_request_time = self.clock()
