from __future__ import annotations

import datetime
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.schemas.market import ApiKeyUsage

logger = logging.getLogger(__name__)

DEFAULT_KEY_BLOCK_SECONDS = 60.0
DEFAULT_DAILY_LIMIT = 500
# a key is retired for the day once it has used this share of its quota
DAILY_CUTOFF_RATIO = 0.95


@dataclass
class ApiKey:
    key: str
    name: str
    daily_usage: int = 0
    blocked_until: float = 0.0


class KeyRotation:
    """Pool of API keys for one provider.

    Each call is served by the least-used key that is neither blocked nor
    close to its daily quota. A rate-limited key is blocked for
    ``block_seconds``; usage counters reset at UTC midnight.
    """

    def __init__(
        self,
        provider: str,
        keys: list[str],
        block_seconds: float = DEFAULT_KEY_BLOCK_SECONDS,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        unique = [key for key in dict.fromkeys(key.strip() for key in keys) if key]
        if not unique:
            raise ValueError(f"{provider} needs at least one API key")
        self.provider = provider
        self.keys = [ApiKey(key, f"key_{index}") for index, key in enumerate(unique, start=1)]
        self.block_seconds = block_seconds
        self.daily_limit = daily_limit
        self.clock = clock
        self.day = self._today()

    def _today(self) -> datetime.date:
        return datetime.datetime.fromtimestamp(self.clock(), tz=datetime.UTC).date()

    def _roll_day(self) -> None:
        today = self._today()
        if today == self.day:
            return
        self.day = today
        for key in self.keys:
            key.daily_usage = 0
        logger.info("Daily usage reset for %d %s keys", len(self.keys), self.provider)

    def _is_open(self, key: ApiKey, now: float) -> bool:
        return now >= key.blocked_until and key.daily_usage < self.daily_limit * DAILY_CUTOFF_RATIO

    def next_key(self) -> ApiKey | None:
        self._roll_day()
        now = self.clock()
        candidates = [key for key in self.keys if self._is_open(key, now)]
        if not candidates:
            return None
        return min(candidates, key=lambda key: key.daily_usage)

    def record_use(self, key: ApiKey) -> None:
        key.daily_usage += 1
        if key.daily_usage >= self.daily_limit * DAILY_CUTOFF_RATIO:
            logger.warning(
                "%s %s used %d of %d daily requests, retiring it until tomorrow",
                self.provider,
                key.name,
                key.daily_usage,
                self.daily_limit,
            )

    def block(self, key: ApiKey, seconds: float | None = None) -> None:
        seconds = self.block_seconds if seconds is None else seconds
        key.blocked_until = self.clock() + seconds
        logger.warning(
            "%s %s rate limited, blocked for %.0f seconds", self.provider, key.name, seconds
        )

    def usage(self) -> list[ApiKeyUsage]:
        self._roll_day()
        now = self.clock()
        return [
            ApiKeyUsage(
                provider=self.provider,
                name=key.name,
                usage=key.daily_usage,
                limit=self.daily_limit,
                available=max(0, self.daily_limit - key.daily_usage),
                active=self._is_open(key, now),
                blocked_until=(
                    datetime.datetime.fromtimestamp(key.blocked_until, tz=datetime.UTC)
                    if key.blocked_until > now
                    else None
                ),
            )
            for key in self.keys
        ]
