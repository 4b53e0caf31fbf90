from __future__ import annotations

import logging

from app.cache import MarketCache
from app.pipeline.rate_limit import RateLimitTracker
from app.pipeline.resolver import FallbackResolver
from app.pipeline.synthetic import MockMarketGenerator
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

logger = logging.getLogger(__name__)


class BatchCoordinator:
    def __init__(
        self,
        cache: MarketCache,
        rate_limit: RateLimitTracker,
        resolver: FallbackResolver,
        generator: MockMarketGenerator,
    ) -> None:
        self.cache = cache
        self.rate_limit = rate_limit
        self.resolver = resolver
        self.generator = generator

    async def get_batch(self, symbols: list[str]) -> list[MarketRecord]:
        symbols = [normalize_symbol(symbol) for symbol in symbols]
        if not symbols:
            return []

        cached = await self.cache.get_batch()
        if cached is not None:
            results: list[MarketRecord] = []
            for symbol in symbols:
                record = cached.get(symbol)
                if record is not None:
                    results.append(record.tagged("cache"))
                else:
                    results.append(await self.resolver.resolve(symbol))
            return results

        logger.info("Refreshing batch cache for %d symbols", len(symbols))
        if self.rate_limit.is_limited():
            return await self._mock_batch(symbols)

        # Sequential on purpose: every symbol goes through the shared throttles.
        results = []
        for symbol in symbols:
            results.append(await self.resolver.resolve(symbol))
        await self.cache.set_batch(dict(zip(symbols, results)))
        return results

    async def _mock_batch(self, symbols: list[str]) -> list[MarketRecord]:
        logger.info("Rate limit active, using mock data for batch request")
        try:
            records = self.generator.generate_many(symbols)
        except Exception:
            logger.exception("Mock batch generation failed, using random fallback")
            return [self.generator.generate_fallback(symbol) for symbol in symbols]
        await self.cache.set_batch(dict(zip(symbols, records)))
        return records
