from __future__ import annotations

from app.pipeline.throttle import Throttle
from app.providers.base import (
    ProviderRateLimited,
    QuoteProvider,
    has_rate_limit_marker,
    to_float,
)
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

_QUOTE_PATH = "/api/v3/quote/"


class FinancialModelingPrepProvider(QuoteProvider):
    """Quote endpoint that accepts a comma-separated symbol list."""

    name = "fmp"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        api_key: str,
        base_url: str = "https://financialmodelingprep.com",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.api_key = api_key
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        records = await self._quote([symbol])
        if not records:
            raise self.parse_error(symbol, "symbol not in response")
        return records[0]

    async def fetch_many(self, symbols: list[str]) -> list[MarketRecord]:
        if not symbols:
            return []
        await self.throttle.acquire()
        return await self._quote(symbols)

    async def _quote(self, symbols: list[str]) -> list[MarketRecord]:
        requested = {symbol.strip().upper(): normalize_symbol(symbol) for symbol in symbols}
        url = build_url(
            self.base_url, f"{_QUOTE_PATH}{','.join(requested)}", {"apikey": self.api_key}
        )
        label = symbols[0] if len(symbols) == 1 else None
        payload = await get_json(self.name, url, symbol=label, timeout=self.timeout)
        if isinstance(payload, dict):
            if has_rate_limit_marker(payload):
                raise ProviderRateLimited(self.name, label, str(payload.get("Error Message")))
            raise self.parse_error(label, str(payload.get("Error Message") or "unexpected payload"))
        if not isinstance(payload, list):
            raise self.parse_error(label, "unexpected payload")

        records: list[MarketRecord] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            ticker = str(item.get("symbol") or "").upper()
            price = to_float(item.get("price"))
            if ticker not in requested or not price:
                continue
            records.append(
                self.record(
                    requested[ticker],
                    price,
                    to_float(item.get("change"), 0.0),
                    to_float(item.get("changesPercentage"), 0.0),
                    volume=to_float(item.get("volume")),
                    market_cap=to_float(item.get("marketCap")),
                )
            )
        return records
