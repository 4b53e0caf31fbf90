from __future__ import annotations

import random
import zlib
from dataclasses import dataclass

from app.schemas.market import MarketRecord
from app.symbols import classify_symbol, normalize_symbol, to_ticker

FUNDAMENTAL_FIELDS = ("team", "tech", "community", "adoption")


@dataclass(frozen=True)
class ReferenceQuote:
    price: float
    change_percent: float
    volume: float


REFERENCE_QUOTES = {
    "BTC": ReferenceQuote(45250.50, 2.84, 1_250_000),
    "ETH": ReferenceQuote(3180.75, -2.61, 890_000),
    "SOL": ReferenceQuote(98.45, 6.11, 2_100_000),
    "ADA": ReferenceQuote(0.485, -3.0, 1_800_000),
    "AVAX": ReferenceQuote(34.20, 9.09, 950_000),
    "DOT": ReferenceQuote(7.85, 1.55, 720_000),
}


def _symbol_rng(symbol: str) -> random.Random:
    return random.Random(zlib.crc32(symbol.strip().upper().encode("utf-8")))


class MockMarketGenerator:
    """Synthetic quotes for when every provider is unavailable.

    ``generate`` keeps a stable per-symbol shape (base price, typical move,
    volume, supply) and only jitters it, so repeated mock reads look like the
    same instrument. ``generate_fallback`` has no per-symbol shaping at all.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def _reference(self, symbol: str) -> tuple[ReferenceQuote, float]:
        seeded = _symbol_rng(symbol)
        reference = REFERENCE_QUOTES.get(to_ticker(symbol))
        if reference is None:
            reference = ReferenceQuote(
                price=seeded.uniform(10, 1010),
                change_percent=seeded.uniform(-5, 5),
                volume=float(seeded.randint(1_000_000, 50_000_000)),
            )
        supply = seeded.uniform(1e7, 5e9)
        return reference, supply

    def generate(self, symbol: str) -> MarketRecord:
        reference, supply = self._reference(symbol)
        price = reference.price * (1 + self.rng.uniform(-0.01, 0.01))
        change_percent = reference.change_percent + self.rng.uniform(-2, 2)
        change = price - price / (1 + change_percent / 100)
        volume = reference.volume * self.rng.uniform(0.8, 1.2)
        return MarketRecord(
            symbol=normalize_symbol(symbol),
            price=price,
            change=change,
            change_percent=change_percent,
            volume=float(int(volume)),
            market_cap=float(int(price * supply)),
            asset_type=classify_symbol(symbol),
            provenance="mock",
            source="mock",
        )

    def generate_many(self, symbols: list[str]) -> list[MarketRecord]:
        return [self.generate(symbol) for symbol in symbols]

    def generate_fallback(self, symbol: str) -> MarketRecord:
        base_price = self.rng.random() * 1000 + 10
        change_percent = (self.rng.random() - 0.5) * 20
        return MarketRecord(
            symbol=normalize_symbol(symbol),
            price=base_price,
            change=base_price * change_percent / 100,
            change_percent=change_percent,
            volume=float(self.rng.randrange(10_000_000)),
            market_cap=float(self.rng.randrange(100_000_000_000)),
            asset_type=classify_symbol(symbol),
            provenance="fallback",
            source="random",
        )

    def generate_fundamentals(self) -> dict[str, int]:
        return {name: self.rng.randint(60, 99) for name in FUNDAMENTAL_FIELDS}
