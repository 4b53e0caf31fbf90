from __future__ import annotations

import asyncio
import logging

from app.cache import MarketCache
from app.pipeline.rate_limit import RateLimitTracker
from app.pipeline.synthetic import MockMarketGenerator
from app.pipeline.throttle import Sleep
from app.providers.base import ProviderError, ProviderRateLimited
from app.providers.selector import ProviderChain
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

logger = logging.getLogger(__name__)


class FallbackResolver:
    """Resolves one symbol to a record, degrading provenance instead of raising.

    Order: fresh cache, rate-limit check, throttled provider chain with
    bounded retries, then extended cache, mock generator, random fallback.
    Concurrent callers for the same symbol share a single in-flight fetch.
    """

    def __init__(
        self,
        cache: MarketCache,
        rate_limit: RateLimitTracker,
        chain: ProviderChain,
        generator: MockMarketGenerator,
        max_retries: int = 2,
        retry_backoff: float = 2.0,
        sleep: Sleep | None = None,
    ) -> None:
        self.cache = cache
        self.rate_limit = rate_limit
        self.chain = chain
        self.generator = generator
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.sleep = sleep or asyncio.sleep
        self.retry_count = 0
        self._in_flight: dict[str, asyncio.Task[MarketRecord]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def resolve(self, symbol: str) -> MarketRecord:
        key = normalize_symbol(symbol)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve(key))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[MarketRecord]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _resolve(self, symbol: str) -> MarketRecord:
        cached = await self.cache.get(symbol)
        if cached is not None:
            return cached

        if self.rate_limit.is_limited():
            logger.info("Rate limit active, skipping providers for %s", symbol)
            return await self._degrade(symbol)

        record = await self._fetch(symbol)
        if record is None:
            return await self._degrade(symbol)
        await self.cache.set(symbol, record)
        return record

    async def _fetch(self, symbol: str) -> MarketRecord | None:
        for attempt in range(self.max_retries + 1):
            if self.rate_limit.is_limited():
                break
            try:
                record = await self.chain.fetch_with_fallback(symbol)
            except ProviderRateLimited as exc:
                logger.warning("Rate limited while fetching %s: %s", symbol, exc)
                self.rate_limit.activate()
                break
            except ProviderError as exc:
                logger.warning("Error fetching real data for %s: %s", symbol, exc)
                if attempt >= self.max_retries:
                    break
                self.retry_count = attempt + 1
                delay = self.retry_count * self.retry_backoff
                logger.info(
                    "Retrying fetch for %s (attempt %d) in %.1fs", symbol, self.retry_count, delay
                )
                await self.sleep(delay)
                continue

            self.retry_count = 0
            return record.tagged("real")

        self.retry_count = 0
        return None

    async def _degrade(self, symbol: str) -> MarketRecord:
        extended = await self.cache.get(symbol, extended=True)
        if extended is not None:
            logger.info("Using extended cache for %s", symbol)
            return extended
        return await self.mock_or_fallback(symbol)

    async def mock_or_fallback(self, symbol: str) -> MarketRecord:
        try:
            record = self.generator.generate(symbol)
        except Exception:
            logger.exception("Mock generator failed for %s, using random fallback", symbol)
            return self.generator.generate_fallback(symbol)
        await self.cache.set(symbol, record)
        return record
