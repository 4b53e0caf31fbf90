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
from app.providers.key_rotation import KeyRotation
from app.schemas.market import ApiKeyUsage, MarketRecord
from app.symbols import normalize_symbol

_QUOTE_PATH = "/query"


class AlphaVantageProvider(QuoteProvider):
    name = "alpha_vantage"
    asset_type = "stock"

    def __init__(
        self,
        throttle: Throttle,
        rotation: KeyRotation,
        base_url: str = "https://www.alphavantage.co",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.rotation = rotation
        self.base_url = base_url

    def key_usage(self) -> list[ApiKeyUsage]:
        return self.rotation.usage()

    async def _request(self, symbol: str) -> dict:
        """GLOBAL_QUOTE call that rotates to the next open key on a rate limit."""
        ticker = symbol.strip().upper()
        detail = "all API keys are blocked"
        for _ in self.rotation.keys:
            key = self.rotation.next_key()
            if key is None:
                break
            url = build_url(
                self.base_url,
                _QUOTE_PATH,
                {"function": "GLOBAL_QUOTE", "symbol": ticker, "apikey": key.key},
            )
            self.rotation.record_use(key)
            try:
                payload = await get_json(self.name, url, symbol=symbol, timeout=self.timeout)
            except ProviderRateLimited as exc:
                self.rotation.block(key)
                detail = exc.detail
                continue
            if not isinstance(payload, dict):
                raise self.parse_error(symbol, "unexpected payload")

            notes = {name: payload.get(name) for name in ("Note", "Information")}
            if has_rate_limit_marker(notes):
                self.rotation.block(key)
                detail = str(notes["Note"] or notes["Information"])
                continue
            return payload
        raise ProviderRateLimited(self.name, symbol, detail)

    async def fetch(self, symbol: str) -> MarketRecord:
        payload = await self._request(symbol)
        if payload.get("Error Message"):
            raise self.parse_error(symbol, str(payload["Error Message"]))

        quote = payload.get("Global Quote") or {}
        price = to_float(quote.get("05. price"))
        if price is None:
            raise self.parse_error(symbol, "missing price")

        change = to_float(quote.get("09. change"))
        change_pct = to_float(quote.get("10. change percent"))
        if change is None or change_pct is None:
            change, change_pct = percent_change(price, to_float(quote.get("08. previous close")))

        return self.record(
            normalize_symbol(symbol),
            price,
            change,
            change_pct,
            volume=to_float(quote.get("06. volume")),
        )
