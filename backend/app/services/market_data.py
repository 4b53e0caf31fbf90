from __future__ import annotations

import datetime
import logging
import random
import time
from collections.abc import Callable

from pydantic import ValidationError

from app.cache import MarketCache
from app.config.settings import Settings, settings
from app.pipeline.batch import BatchCoordinator
from app.pipeline.rate_limit import RateLimitTracker
from app.pipeline.resolver import FallbackResolver
from app.pipeline.synthetic import FUNDAMENTAL_FIELDS, MockMarketGenerator
from app.pipeline.throttle import Sleep
from app.providers.base import QuoteProvider
from app.providers.selector import ProviderChain, build_providers
from app.schemas.market import (
    BatchCacheStats,
    DiagnosticReport,
    GemData,
    MarketRecord,
    ServiceStats,
)
from app.services.diagnostics import run_provider_diagnostics
from app.store import KeyValueStore, build_store
from app.symbols import classify_symbol, display_name, normalize_symbol

logger = logging.getLogger(__name__)


class MarketDataService:
    """Entry point for quotes; owns the cache, breaker, resolver and batch state."""

    def __init__(
        self,
        cache: MarketCache,
        rate_limit: RateLimitTracker,
        chain: ProviderChain,
        generator: MockMarketGenerator,
        resolver: FallbackResolver,
        batch: BatchCoordinator,
        config: Settings | None = None,
    ) -> None:
        self.cache = cache
        self.rate_limit = rate_limit
        self.chain = chain
        self.generator = generator
        self.resolver = resolver
        self.batch = batch
        self.config = config or settings

    async def get_market_data(self, symbol: str) -> MarketRecord:
        return await self.resolver.resolve(symbol)

    async def get_batch_market_data(self, symbols: list[str]) -> list[MarketRecord]:
        return await self.batch.get_batch(symbols)

    def get_service_stats(self) -> ServiceStats:
        window = self.rate_limit.window
        until = None
        if window.active:
            until = datetime.datetime.fromtimestamp(window.until, tz=datetime.UTC)
        return ServiceStats(
            rate_limit_active=self.rate_limit.is_limited(),
            rate_limit_until=until,
            rate_limit_remaining_seconds=self.rate_limit.remaining(),
            retry_count=self.resolver.retry_count,
            cache_writes=self.cache.writes,
            batch_writes=self.cache.batch_writes,
            in_flight=self.resolver.in_flight,
            cache_ttl_seconds=self.cache.ttl,
            extended_cache_ttl_seconds=self.cache.extended_ttl,
            providers=[provider.name for provider in self.chain.all_providers()],
            api_keys=[
                usage for provider in self.chain.all_providers() for usage in provider.key_usage()
            ],
        )

    def activate_rate_limit(self, duration: float | None = None) -> None:
        self.rate_limit.activate(duration)

    def reset_rate_limit(self) -> None:
        self.rate_limit.reset()
        self.resolver.retry_count = 0

    async def clear_all_cache(self) -> int:
        return await self.cache.clear()

    async def get_batch_cache_stats(self) -> BatchCacheStats:
        return await self.cache.batch_stats()

    async def force_batch_refresh(self, symbols: list[str] | None = None) -> list[MarketRecord]:
        logger.info("Forcing batch cache refresh")
        await self.cache.invalidate_batch()
        if not symbols:
            return []
        return await self.get_batch_market_data(symbols)

    async def purge_stale_cache(self, max_age: float | None = None) -> int:
        if max_age is None:
            max_age = self.config.cache.purge_max_age_seconds or self.cache.ttl * 2
        return await self.cache.purge_stale(max_age)

    async def get_gem_data(self, symbol: str, persist_fundamentals: bool = True) -> GemData:
        symbol = normalize_symbol(symbol)
        fundamentals = None
        if persist_fundamentals:
            fundamentals = await self.cache.get_fundamentals(symbol)
        if fundamentals is None:
            fundamentals = self.generator.generate_fundamentals()
            if persist_fundamentals:
                await self.cache.set_fundamentals(symbol, fundamentals)

        record = await self.get_market_data(symbol)
        rng = self.generator.rng
        try:
            return GemData(
                symbol=symbol,
                name=display_name(symbol),
                price=record.price,
                change_24h=record.change_percent,
                market_cap=record.market_cap or float(rng.randrange(1_000_000_000)),
                volume_24h=record.volume or float(rng.randrange(100_000_000)),
                asset_type=record.asset_type,
                provenance=record.provenance,
                **{name: fundamentals[name] for name in FUNDAMENTAL_FIELDS},
            )
        except (KeyError, ValidationError) as exc:
            logger.warning("Error building gem data for %s: %s", symbol, exc)

        return GemData(
            symbol=symbol,
            name=display_name(symbol),
            price=round(rng.random() * 100, 4),
            change_24h=round((rng.random() - 0.5) * 20, 4),
            market_cap=float(rng.randrange(1_000_000_000)),
            volume_24h=float(rng.randrange(100_000_000)),
            asset_type=classify_symbol(symbol),
            provenance="fallback",
            **self.generator.generate_fundamentals(),
        )

    async def scan_stocks(self, symbols: list[str] | None = None) -> list[MarketRecord]:
        """Real quotes only, merged across the scan providers; no synthetic fill."""
        symbols = symbols or self.config.symbols.popular_stocks
        if self.rate_limit.is_limited():
            logger.info("Rate limit active, skipping stock scan")
            return []
        return await self.chain.aggregate_quotes(symbols)

    async def run_diagnostics(self) -> DiagnosticReport:
        return await run_provider_diagnostics(self.chain)


def build_market_data_service(
    config: Settings | None = None,
    store: KeyValueStore | None = None,
    *,
    providers: dict[str, QuoteProvider] | None = None,
    clock: Callable[[], float] = time.time,
    sleep: Sleep | None = None,
    rng: random.Random | None = None,
) -> MarketDataService:
    config = config or settings
    store = store if store is not None else build_store(config)
    providers = providers if providers is not None else build_providers(config, sleep=sleep)

    cache = MarketCache(
        store,
        ttl=config.cache.ttl_seconds,
        extended_ttl=config.cache.extended_ttl_seconds,
        clock=clock,
    )
    rate_limit = RateLimitTracker(config.resolver.rate_limit_seconds, clock=clock)
    chain = ProviderChain.from_settings(providers, config)
    generator = MockMarketGenerator(rng)
    resolver = FallbackResolver(
        cache,
        rate_limit,
        chain,
        generator,
        max_retries=config.resolver.max_retries,
        retry_backoff=config.resolver.retry_backoff_seconds,
        sleep=sleep,
    )
    batch = BatchCoordinator(cache, rate_limit, resolver, generator)
    return MarketDataService(cache, rate_limit, chain, generator, resolver, batch, config)
