from __future__ import annotations

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssetType = Literal["stock", "crypto"]
Provenance = Literal["real", "cache", "mock", "fallback"]

PRICE_PRECISION = 4


def round_price(value: float) -> float:
    return round(float(value), PRICE_PRECISION)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class MarketRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float = Field(ge=0)
    change: float = 0.0
    change_percent: float = 0.0
    volume: Optional[float] = None
    market_cap: Optional[float] = None
    asset_type: AssetType = "stock"
    last_updated: datetime.datetime = Field(default_factory=utcnow)
    provenance: Provenance = "real"
    source: Optional[str] = None

    @field_validator("price", "change", "change_percent", mode="before")
    @classmethod
    def _round(cls, value: float) -> float:
        return round_price(value)

    def tagged(self, provenance: Provenance) -> MarketRecord:
        if provenance == self.provenance:
            return self
        return self.model_copy(update={"provenance": provenance})


class GemData(BaseModel):
    symbol: str
    name: str
    price: float
    change_24h: float
    market_cap: float
    volume_24h: float
    asset_type: AssetType
    team: int
    tech: int
    community: int
    adoption: int
    last_updated: datetime.datetime = Field(default_factory=utcnow)
    provenance: Provenance = "real"


class BatchRequest(BaseModel):
    symbols: list[str] = Field(default_factory=list)


class BatchCacheStats(BaseModel):
    is_valid: bool = False
    age_seconds: float | None = None
    symbol_count: int = 0
    last_update: datetime.datetime | None = None
    next_refresh_in: float = 0.0


class ApiKeyUsage(BaseModel):
    provider: str
    name: str
    usage: int = 0
    limit: int
    available: int
    active: bool = True
    blocked_until: datetime.datetime | None = None


class ServiceStats(BaseModel):
    rate_limit_active: bool
    rate_limit_until: datetime.datetime | None = None
    rate_limit_remaining_seconds: float = 0.0
    retry_count: int = 0
    cache_writes: int = 0
    batch_writes: int = 0
    in_flight: int = 0
    cache_ttl_seconds: float
    extended_cache_ttl_seconds: float
    providers: list[str] = Field(default_factory=list)
    api_keys: list[ApiKeyUsage] = Field(default_factory=list)


class ProviderCheck(BaseModel):
    provider: str
    asset_type: AssetType
    symbol: str
    working: bool
    price: float | None = None
    error_kind: str | None = None
    error: str | None = None


class DiagnosticReport(BaseModel):
    checks: list[ProviderCheck] = Field(default_factory=list)
    working_providers: list[str] = Field(default_factory=list)
    severity: Literal["low", "medium", "high", "critical"] = "low"
    recommendations: list[str] = Field(default_factory=list)
    api_keys: list[ApiKeyUsage] = Field(default_factory=list)
