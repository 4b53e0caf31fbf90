from __future__ import annotations

from app.config.settings import SymbolSettings, settings
from app.schemas.market import AssetType

_QUOTE_SUFFIXES = ("-USD", "USD")


def normalize_symbol(symbol: str) -> str:
    """Trim whitespace; stock tickers are case-insensitive and upper-cased."""
    symbol = symbol.strip()
    if classify_symbol(symbol) == "stock":
        return symbol.upper()
    return symbol


def classify_symbol(symbol: str, table: SymbolSettings | None = None) -> AssetType:
    table = table or settings.symbols
    upper = symbol.strip().upper()
    if any(ticker in upper for ticker in table.crypto_tickers):
        return "crypto"
    lower = upper.lower()
    if any(coin_id in lower for coin_id in table.coin_ids.values()):
        return "crypto"
    return "stock"


def strip_quote_suffix(symbol: str) -> str:
    upper = symbol.strip().upper()
    for suffix in _QUOTE_SUFFIXES:
        if upper.endswith(suffix) and len(upper) > len(suffix):
            return upper[: -len(suffix)]
    return upper


def to_coin_id(symbol: str, table: SymbolSettings | None = None) -> str:
    """Map a ticker (``BTC``, ``ETHUSD``, ``SOL-USD``) or coin id to a CoinGecko id."""
    table = table or settings.symbols
    base = strip_quote_suffix(symbol)
    return table.coin_ids.get(base, base.lower())


def display_name(symbol: str) -> str:
    return strip_quote_suffix(symbol) if symbol.strip().upper().endswith("USD") else symbol.strip()


def to_ticker(symbol: str, table: SymbolSettings | None = None) -> str:
    """Reverse of :func:`to_coin_id`; plain tickers pass through upper-cased."""
    table = table or settings.symbols
    base = strip_quote_suffix(symbol)
    for ticker, coin_id in table.coin_ids.items():
        if coin_id.upper() == base:
            return ticker
    return base
