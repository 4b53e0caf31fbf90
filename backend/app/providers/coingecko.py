from __future__ import annotations

from typing import Any

from app.pipeline.throttle import Throttle
from app.providers.base import (
    ProviderRateLimited,
    QuoteProvider,
    change_from_percent,
    has_rate_limit_marker,
    to_float,
)
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol, to_coin_id

_PRICE_PATH = "/api/v3/simple/price"


class CoinGeckoProvider(QuoteProvider):
    name = "coingecko"
    asset_type = "crypto"

    def __init__(
        self,
        throttle: Throttle,
        base_url: str = "https://api.coingecko.com",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        records = await self._prices([symbol])
        if not records:
            raise self.parse_error(symbol, f"no price for {to_coin_id(symbol)}")
        return records[0]

    async def fetch_many(self, symbols: list[str]) -> list[MarketRecord]:
        if not symbols:
            return []
        await self.throttle.acquire()
        return await self._prices(symbols)

    def _check_status(self, payload: dict[str, Any], symbol: str | None) -> None:
        status = payload.get("status")
        if not isinstance(status, dict):
            return
        if status.get("error_code") == 429 or has_rate_limit_marker(status):
            raise ProviderRateLimited(self.name, symbol, str(status.get("error_message")))
        raise self.parse_error(symbol, str(status.get("error_message") or status))

    async def _prices(self, symbols: list[str]) -> list[MarketRecord]:
        coin_ids = {symbol: to_coin_id(symbol) for symbol in symbols}
        url = build_url(
            self.base_url,
            _PRICE_PATH,
            {
                "ids": ",".join(dict.fromkeys(coin_ids.values())),
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_24hr_vol": "true",
                "include_market_cap": "true",
            },
        )
        label = symbols[0] if len(symbols) == 1 else None
        payload = await get_json(self.name, url, symbol=label, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise self.parse_error(label, "unexpected payload")
        self._check_status(payload, label)

        records: list[MarketRecord] = []
        for symbol, coin_id in coin_ids.items():
            coin = payload.get(coin_id)
            if not isinstance(coin, dict):
                continue
            price = to_float(coin.get("usd"))
            if price is None:
                continue
            change_pct = to_float(coin.get("usd_24h_change"), 0.0)
            records.append(
                self.record(
                    normalize_symbol(symbol),
                    price,
                    change_from_percent(price, change_pct),
                    change_pct,
                    volume=to_float(coin.get("usd_24h_vol")),
                    market_cap=to_float(coin.get("usd_market_cap")),
                )
            )
        return records
