from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from app.config.settings import Settings, settings
from app.pipeline.throttle import Sleep, Throttle
from app.providers.alpha_vantage import AlphaVantageProvider
from app.providers.base import ProviderError, ProviderRateLimited, QuoteProvider
from app.providers.coingecko import CoinGeckoProvider
from app.providers.coinpaprika import CoinPaprikaProvider
from app.providers.finnhub import FinnhubProvider
from app.providers.fmp import FinancialModelingPrepProvider
from app.providers.iex import IEXCloudProvider
from app.providers.key_rotation import KeyRotation
from app.providers.polygon import PolygonProvider
from app.providers.yahoo import YahooFinanceProvider
from app.schemas.market import AssetType, MarketRecord
from app.symbols import classify_symbol

logger = logging.getLogger(__name__)


def build_providers(
    config: Settings | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep | None = None,
) -> dict[str, QuoteProvider]:
    config = config or settings
    cfg = config.providers
    timeout = config.resolver.request_timeout_seconds

    def throttle(name: str) -> Throttle:
        delay = cfg.request_delays.get(name, 0.0)
        return Throttle(delay, clock=clock, sleep=sleep or asyncio.sleep)

    providers: list[QuoteProvider] = [
        AlphaVantageProvider(
            throttle("alpha_vantage"),
            KeyRotation(
                "alpha_vantage",
                cfg.alpha_vantage_api_keys,
                block_seconds=cfg.alpha_vantage_key_block_seconds,
                daily_limit=cfg.alpha_vantage_daily_limit,
            ),
            cfg.alpha_vantage_base_url,
            timeout,
        ),
        YahooFinanceProvider(throttle("yahoo"), cfg.yahoo_base_url, timeout),
        FinancialModelingPrepProvider(throttle("fmp"), cfg.fmp_api_key, cfg.fmp_base_url, timeout),
        FinnhubProvider(throttle("finnhub"), cfg.finnhub_api_key, cfg.finnhub_base_url, timeout),
        IEXCloudProvider(throttle("iex"), cfg.iex_api_key, cfg.iex_base_url, timeout),
        PolygonProvider(throttle("polygon"), cfg.polygon_api_key, cfg.polygon_base_url, timeout),
        CoinGeckoProvider(throttle("coingecko"), cfg.coingecko_base_url, timeout),
        CoinPaprikaProvider(throttle("coinpaprika"), cfg.coinpaprika_base_url, timeout),
    ]
    return {provider.name: provider for provider in providers}


class ProviderChain:
    """Ordered provider lists per asset type plus the multi-provider scan order."""

    def __init__(
        self,
        stock: list[QuoteProvider],
        crypto: list[QuoteProvider],
        scan: list[QuoteProvider] | None = None,
    ) -> None:
        self.stock = stock
        self.crypto = crypto
        self.scan = scan if scan is not None else stock

    @classmethod
    def from_settings(
        cls, providers: dict[str, QuoteProvider], config: Settings | None = None
    ) -> ProviderChain:
        cfg = (config or settings).providers

        def pick(names: list[str]) -> list[QuoteProvider]:
            missing = [name for name in names if name not in providers]
            if missing:
                raise ValueError(f"Unknown providers configured: {', '.join(missing)}")
            return [providers[name] for name in names]

        return cls(pick(cfg.stock_order), pick(cfg.crypto_order), pick(cfg.scan_order))

    def for_asset(self, asset_type: AssetType) -> list[QuoteProvider]:
        return self.crypto if asset_type == "crypto" else self.stock

    def all_providers(self) -> list[QuoteProvider]:
        seen: dict[str, QuoteProvider] = {}
        for provider in [*self.stock, *self.crypto, *self.scan]:
            seen.setdefault(provider.name, provider)
        return list(seen.values())

    async def fetch_with_fallback(self, symbol: str) -> MarketRecord:
        """First provider that yields a quote wins.

        A rate-limit signal stops the walk immediately; otherwise the last
        provider error is raised once every provider has failed.
        """
        last_error = ProviderError("chain", symbol, "no providers configured")
        for provider in self.for_asset(classify_symbol(symbol)):
            await provider.throttle.acquire()
            try:
                return await provider.fetch(symbol)
            except ProviderRateLimited:
                raise
            except ProviderError as exc:
                logger.warning("%s failed for %s: %s", provider.name, symbol, exc)
                last_error = exc
        raise last_error

    async def aggregate_quotes(self, symbols: list[str]) -> list[MarketRecord]:
        """Ask each scan provider only for the symbols still uncovered."""
        covered: dict[str, MarketRecord] = {}
        for provider in self.scan:
            pending = [s for s in symbols if s.strip().upper() not in covered]
            if not pending:
                logger.info("All symbols covered, stopping provider calls")
                break
            try:
                results = await provider.fetch_many(pending)
            except ProviderError as exc:
                logger.warning("%s failed during scan: %s", provider.name, exc)
                continue
            new = 0
            for record in results:
                key = record.symbol.strip().upper()
                if key not in covered:
                    covered[key] = record
                    new += 1
            if new:
                logger.info("%s: got %d new results", provider.name, new)

        missing = [s for s in symbols if s.strip().upper() not in covered]
        if missing:
            logger.info("Scan missing: %s", ", ".join(missing))
        ordered = dict.fromkeys(s.strip().upper() for s in symbols)
        return [covered[key] for key in ordered if key in covered]
