from __future__ import annotations

from app.pipeline.throttle import Throttle
from app.providers.base import (
    ProviderRateLimited,
    QuoteProvider,
    has_rate_limit_marker,
    percent_change,
    to_float,
)
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

_QUOTE_PATH = "/api/v1/quote"


class FinnhubProvider(QuoteProvider):
    name = "finnhub"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        api_key: str,
        base_url: str = "https://finnhub.io",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.api_key = api_key
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        ticker = symbol.strip().upper()
        url = build_url(self.base_url, _QUOTE_PATH, {"symbol": ticker, "token": self.api_key})
        payload = await get_json(self.name, url, symbol=symbol, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise self.parse_error(symbol, "unexpected payload")
        if payload.get("error"):
            if has_rate_limit_marker(payload):
                raise ProviderRateLimited(self.name, symbol, str(payload["error"]))
            raise self.parse_error(symbol, str(payload["error"]))

        # Unknown tickers come back as an all-zero quote.
        price = to_float(payload.get("c"))
        if not price:
            raise self.parse_error(symbol, "empty quote")

        change = to_float(payload.get("d"))
        change_pct = to_float(payload.get("dp"))
        if change is None or change_pct is None:
            change, change_pct = percent_change(price, to_float(payload.get("pc")))

        return self.record(
            normalize_symbol(symbol),
            price,
            change,
            change_pct,
            volume=to_float(payload.get("v")),
        )
