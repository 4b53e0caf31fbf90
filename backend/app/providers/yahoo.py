from __future__ import annotations

from app.pipeline.throttle import Throttle
from app.providers.base import QuoteProvider, percent_change, to_float
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol

_CHART_PATH = "/v8/finance/chart/"


class YahooFinanceProvider(QuoteProvider):
    name = "yahoo"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        base_url: str = "https://query1.finance.yahoo.com",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        ticker = symbol.strip().upper()
        url = build_url(
            self.base_url, f"{_CHART_PATH}{ticker}", {"interval": "1d", "range": "1d"}
        )
        payload = await get_json(self.name, url, symbol=symbol, timeout=self.timeout)
        chart = payload.get("chart") if isinstance(payload, dict) else None
        if not isinstance(chart, dict):
            raise self.parse_error(symbol, "missing chart")
        if chart.get("error"):
            raise self.parse_error(symbol, str(chart["error"]))

        results = chart.get("result") or []
        meta = results[0].get("meta") if results and isinstance(results[0], dict) else None
        if not isinstance(meta, dict):
            raise self.parse_error(symbol, "missing meta")

        price = to_float(meta.get("regularMarketPrice"))
        if price is None:
            raise self.parse_error(symbol, "missing price")
        previous = to_float(meta.get("previousClose")) or to_float(meta.get("chartPreviousClose"))
        change, change_pct = percent_change(price, previous)

        return self.record(
            normalize_symbol(symbol),
            price,
            change,
            change_pct,
            volume=to_float(meta.get("regularMarketVolume")),
            market_cap=to_float(meta.get("marketCap")),
        )
