from __future__ import annotations

import logging
import math
from typing import Any, Literal

from pydantic import ValidationError

from app.pipeline.throttle import Throttle
from app.schemas.market import ApiKeyUsage, AssetType, MarketRecord

logger = logging.getLogger(__name__)

ErrorKind = Literal["timeout", "rate_limited", "http_error", "parse_error"]

_RATE_LIMIT_MARKERS = (
    "rate limit",
    "api call frequency",
    "too many requests",
    "limit reach",
    "exceeded the maximum",
)


class ProviderError(Exception):
    kind: ErrorKind = "http_error"

    def __init__(self, provider: str, symbol: str | None = None, detail: str = "") -> None:
        self.provider = provider
        self.symbol = symbol
        self.detail = detail
        super().__init__(f"{provider}: {detail or self.kind} ({symbol or '-'})")


class ProviderTimeout(ProviderError):
    kind: ErrorKind = "timeout"


class ProviderRateLimited(ProviderError):
    kind: ErrorKind = "rate_limited"


class ProviderHttpError(ProviderError):
    kind: ErrorKind = "http_error"

    def __init__(
        self,
        provider: str,
        symbol: str | None = None,
        detail: str = "",
        status: int | None = None,
    ) -> None:
        self.status = status
        super().__init__(provider, symbol, detail or f"HTTP {status}")


class ProviderParseError(ProviderError):
    kind: ErrorKind = "parse_error"


def has_rate_limit_marker(payload: Any) -> bool:
    if isinstance(payload, dict):
        values = payload.values()
    elif isinstance(payload, str):
        values = [payload]
    else:
        return False
    for value in values:
        if isinstance(value, str) and any(m in value.lower() for m in _RATE_LIMIT_MARKERS):
            return True
    return False


def to_float(value: Any, default: float | None = None) -> float | None:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def percent_change(price: float, previous: float | None) -> tuple[float, float]:
    """Absolute and relative move of ``price`` against ``previous``."""
    if not previous:
        return 0.0, 0.0
    change = price - previous
    return change, change / previous * 100


def change_from_percent(price: float, change_pct: float) -> float:
    """Absolute move implied by a 24h percentage change ending at ``price``."""
    if change_pct == -100:
        return price
    return price - price / (1 + change_pct / 100)


class QuoteProvider:
    name: str = "provider"
    asset_type: AssetType = "stock"

    def __init__(self, throttle: Throttle, timeout: float = 8.0) -> None:
        self.throttle = throttle
        self.timeout = timeout

    @property
    def request_delay(self) -> float:
        return self.throttle.request_delay

    async def fetch(self, symbol: str) -> MarketRecord:
        raise NotImplementedError

    async def fetch_many(self, symbols: list[str]) -> list[MarketRecord]:
        results: list[MarketRecord] = []
        for symbol in symbols:
            await self.throttle.acquire()
            try:
                results.append(await self.fetch(symbol))
            except ProviderRateLimited:
                raise
            except ProviderError as exc:
                logger.warning("%s failed for %s: %s", self.name, symbol, exc)
        return results

    def record(
        self,
        symbol: str,
        price: float,
        change: float,
        change_percent: float,
        volume: float | None = None,
        market_cap: float | None = None,
    ) -> MarketRecord:
        try:
            return MarketRecord(
                symbol=symbol,
                price=price,
                change=change,
                change_percent=change_percent,
                volume=volume,
                market_cap=market_cap,
                asset_type=self.asset_type,
                provenance="real",
                source=self.name,
            )
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error["loc"])
            raise self.parse_error(symbol, f"invalid quote ({fields or 'record'})") from exc

    def parse_error(self, symbol: str | None, detail: str) -> ProviderParseError:
        return ProviderParseError(self.name, symbol, detail)

    def key_usage(self) -> list[ApiKeyUsage]:
        return []
