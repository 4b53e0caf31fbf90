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


class PolygonProvider(QuoteProvider):
    """Previous-day aggregate; the free tier allows five calls a minute."""

    name = "polygon"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        api_key: str,
        base_url: str = "https://api.polygon.io",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.api_key = api_key
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        ticker = symbol.strip().upper()
        url = build_url(
            self.base_url,
            f"/v2/aggs/ticker/{ticker}/prev",
            {"adjusted": "true", "apiKey": self.api_key},
        )
        payload = await get_json(self.name, url, symbol=symbol, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise self.parse_error(symbol, "unexpected payload")
        if payload.get("status") == "ERROR":
            if has_rate_limit_marker(payload):
                raise ProviderRateLimited(self.name, symbol, str(payload.get("error")))
            raise self.parse_error(symbol, str(payload.get("error")))

        results = payload.get("results") or []
        bar = results[0] if results and isinstance(results[0], dict) else None
        close = to_float(bar.get("c")) if bar else None
        if not close:
            raise self.parse_error(symbol, "no previous-day bar")
        change, change_pct = percent_change(close, to_float(bar.get("o")))

        return self.record(
            normalize_symbol(symbol),
            close,
            change,
            change_pct,
            volume=to_float(bar.get("v")),
        )
