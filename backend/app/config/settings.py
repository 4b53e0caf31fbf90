from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseModel):
    ttl_seconds: float = 120.0
    extended_ttl_seconds: float = 600.0
    purge_max_age_seconds: float | None = None


class ResolverSettings(BaseModel):
    max_retries: int = 2
    retry_backoff_seconds: float = 2.0
    rate_limit_seconds: float = 60.0
    request_timeout_seconds: float = 8.0


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VECTORFLUX_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    alpha_vantage_api_keys: List[str] = Field(default_factory=lambda: ["demo"])
    alpha_vantage_key_block_seconds: float = 60.0
    alpha_vantage_daily_limit: int = 500
    finnhub_api_key: str = "demo"
    fmp_api_key: str = "demo"
    iex_api_key: str = "demo"
    polygon_api_key: str = "DEMO_KEY"

    alpha_vantage_base_url: str = "https://www.alphavantage.co"
    yahoo_base_url: str = "https://query1.finance.yahoo.com"
    fmp_base_url: str = "https://financialmodelingprep.com"
    finnhub_base_url: str = "https://finnhub.io"
    iex_base_url: str = "https://sandbox.iexapis.com"
    polygon_base_url: str = "https://api.polygon.io"
    coingecko_base_url: str = "https://api.coingecko.com"
    coinpaprika_base_url: str = "https://api.coinpaprika.com"

    request_delays: Dict[str, float] = Field(
        default_factory=lambda: {
            "alpha_vantage": 3.0,
            "yahoo": 0.1,
            "fmp": 0.0,
            "finnhub": 1.1,
            "iex": 0.0,
            "polygon": 12.0,
            "coingecko": 3.0,
            "coinpaprika": 0.1,
        }
    )
    stock_order: List[str] = Field(
        default_factory=lambda: ["alpha_vantage", "yahoo", "finnhub", "fmp"]
    )
    crypto_order: List[str] = Field(default_factory=lambda: ["coingecko", "coinpaprika"])
    scan_order: List[str] = Field(default_factory=lambda: ["yahoo", "fmp", "finnhub", "iex"])


class SymbolSettings(BaseModel):
    crypto_tickers: List[str] = Field(
        default_factory=lambda: [
            "BTC",
            "ETH",
            "BNB",
            "ADA",
            "SOL",
            "DOT",
            "MATIC",
            "AVAX",
            "LINK",
            "UNI",
        ]
    )
    coin_ids: Dict[str, str] = Field(
        default_factory=lambda: {
            "BTC": "bitcoin",
            "ETH": "ethereum",
            "BNB": "binancecoin",
            "ADA": "cardano",
            "SOL": "solana",
            "DOT": "polkadot",
            "MATIC": "matic-network",
            "AVAX": "avalanche-2",
            "LINK": "chainlink",
            "UNI": "uniswap",
        }
    )
    popular_stocks: List[str] = Field(
        default_factory=lambda: [
            "AAPL", "MSFT", "GOOGL", "AMZN", "META", "TSLA", "NVDA", "NFLX",
            "JPM", "BAC", "WFC", "GS", "MS",
            "JNJ", "PFE", "UNH", "ABBV",
            "KO", "PEP", "WMT", "HD", "NKE",
            "XOM", "CVX", "COP",
            "BA", "CAT", "GE",
        ]
    )
    default_watchlist: List[str] = Field(
        default_factory=lambda: ["AAPL", "MSFT", "NVDA", "TSLA", "bitcoin", "ethereum"]
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VECTORFLUX_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "VECTORFLUX_REDIS_URL"),
    )
    store_backend: Literal["redis", "memory"] = "redis"
    refresh_queue_name: str = Field(
        default="market-refresh",
        validation_alias=AliasChoices("REFRESH_QUEUE_NAME", "VECTORFLUX_REFRESH_QUEUE_NAME"),
    )
    log_level: str = "INFO"

    cache: CacheSettings = Field(default_factory=CacheSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    symbols: SymbolSettings = Field(default_factory=SymbolSettings)


settings = Settings()
