from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_SECONDS = 60.0


@dataclass
class RateLimitWindow:
    active: bool = False
    until: float = 0.0


class RateLimitTracker:
    """Circuit breaker for the fetch path: while active, providers are skipped."""

    def __init__(
        self,
        default_duration: float = DEFAULT_RATE_LIMIT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_duration = default_duration
        self.clock = clock
        self.window = RateLimitWindow()

    def is_limited(self) -> bool:
        return self.window.active and self.clock() < self.window.until

    def remaining(self) -> float:
        if not self.is_limited():
            return 0.0
        return self.window.until - self.clock()

    def activate(self, duration: float | None = None) -> None:
        duration = self.default_duration if duration is None else duration
        self.window = RateLimitWindow(active=True, until=self.clock() + duration)
        logger.warning("Rate limit activated for %.0f seconds", duration)

    def reset(self) -> None:
        self.window = RateLimitWindow()
        logger.info("Rate limit reset manually")
