from __future__ import annotations

from app.pipeline.throttle import Throttle
from app.providers.base import QuoteProvider, to_float
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

_BATCH_PATH = "/stable/stock/market/batch"


class IEXCloudProvider(QuoteProvider):
    """IEX Cloud sandbox batch quotes; ``changePercent`` arrives as a fraction."""

    name = "iex"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        api_key: str,
        base_url: str = "https://sandbox.iexapis.com",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.api_key = api_key
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        records = await self._batch([symbol])
        if not records:
            raise self.parse_error(symbol, "symbol not in response")
        return records[0]

    async def fetch_many(self, symbols: list[str]) -> list[MarketRecord]:
        if not symbols:
            return []
        await self.throttle.acquire()
        return await self._batch(symbols)

    async def _batch(self, symbols: list[str]) -> list[MarketRecord]:
        requested = {symbol.strip().upper(): normalize_symbol(symbol) for symbol in symbols}
        url = build_url(
            self.base_url,
            _BATCH_PATH,
            {"symbols": ",".join(requested), "types": "quote", "token": self.api_key},
        )
        label = symbols[0] if len(symbols) == 1 else None
        payload = await get_json(self.name, url, symbol=label, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise self.parse_error(label, "unexpected payload")

        records: list[MarketRecord] = []
        for ticker, entry in payload.items():
            quote = entry.get("quote") if isinstance(entry, dict) else None
            if not isinstance(quote, dict) or ticker.upper() not in requested:
                continue
            price = to_float(quote.get("latestPrice"))
            if not price:
                continue
            records.append(
                self.record(
                    requested[ticker.upper()],
                    price,
                    to_float(quote.get("change"), 0.0),
                    to_float(quote.get("changePercent"), 0.0) * 100,
                    volume=to_float(quote.get("latestVolume")),
                    market_cap=to_float(quote.get("marketCap")),
                )
            )
        return records
