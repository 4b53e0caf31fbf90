from __future__ import annotations

from app.pipeline.throttle import Throttle
from app.providers.base import QuoteProvider, change_from_percent, to_float
from app.providers.http import build_url, get_json
from app.schemas.market import MarketRecord
from app.symbols import normalize_symbol, to_ticker

PAPRIKA_IDS = {
    "BTC": "btc-bitcoin",
    "ETH": "eth-ethereum",
    "ADA": "ada-cardano",
    "SOL": "sol-solana",
    "AVAX": "avax-avalanche",
    "LINK": "link-chainlink",
    "DOT": "dot-polkadot",
    "BNB": "bnb-binance-coin",
    "MATIC": "matic-polygon",
    "UNI": "uni-uniswap",
    "LTC": "ltc-litecoin",
    "XRP": "xrp-xrp",
}


def to_paprika_id(symbol: str) -> str:
    ticker = to_ticker(symbol)
    lowered = ticker.lower()
    return PAPRIKA_IDS.get(ticker, f"{lowered}-{lowered}")


class CoinPaprikaProvider(QuoteProvider):
    name = "coinpaprika"
    asset_type = "crypto"

    def __init__(
        self,
        throttle: Throttle,
        base_url: str = "https://api.coinpaprika.com",
        timeout: float = 8.0,
    ) -> None:
        super().__init__(throttle, timeout)
        self.base_url = base_url

    async def fetch(self, symbol: str) -> MarketRecord:
        paprika_id = to_paprika_id(symbol)
        url = build_url(self.base_url, f"/v1/tickers/{paprika_id}")
        payload = await get_json(self.name, url, symbol=symbol, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise self.parse_error(symbol, "unexpected payload")
        if payload.get("error"):
            raise self.parse_error(symbol, str(payload["error"]))

        quote = (payload.get("quotes") or {}).get("USD")
        price = to_float(quote.get("price")) if isinstance(quote, dict) else None
        if price is None:
            raise self.parse_error(symbol, f"no USD quote for {paprika_id}")
        change_pct = to_float(quote.get("percent_change_24h"), 0.0)

        return self.record(
            normalize_symbol(symbol),
            price,
            change_from_percent(price, change_pct),
            change_pct,
            volume=to_float(quote.get("volume_24h")),
            market_cap=to_float(quote.get("market_cap")),
        )
