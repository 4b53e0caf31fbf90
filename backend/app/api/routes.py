from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.jobs.queue import enqueue_batch_refresh
from app.schemas.market import (
    BatchCacheStats,
    BatchRequest,
    DiagnosticReport,
    GemData,
    MarketRecord,
    ServiceStats,
)
from app.services.market_data import MarketDataService
from app.symbols import normalize_symbol

logger = logging.getLogger(__name__)

router = APIRouter()


def get_market_data_service(request: Request) -> MarketDataService:
    return request.app.state.market_data


def _require_symbol(symbol: str) -> str:
    cleaned = normalize_symbol(symbol)
    if not cleaned:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Symbol is required.",
        )
    return cleaned


def _require_symbols(symbols: list[str]) -> list[str]:
    cleaned = [normalize_symbol(symbol) for symbol in symbols]
    if not cleaned or not all(cleaned):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Symbols must be a non-empty list of non-blank symbols.",
        )
    return cleaned


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/market/stats", response_model=ServiceStats)
def market_stats(service: MarketDataService = Depends(get_market_data_service)) -> ServiceStats:
    return service.get_service_stats()


@router.get("/market/batch/stats", response_model=BatchCacheStats)
async def batch_stats(
    service: MarketDataService = Depends(get_market_data_service),
) -> BatchCacheStats:
    return await service.get_batch_cache_stats()


@router.post("/market/batch", response_model=list[MarketRecord])
async def market_batch(
    payload: BatchRequest, service: MarketDataService = Depends(get_market_data_service)
) -> list[MarketRecord]:
    symbols = _require_symbols(payload.symbols)
    return await service.get_batch_market_data(symbols)


@router.post("/market/batch/refresh")
async def refresh_batch(
    payload: BatchRequest, service: MarketDataService = Depends(get_market_data_service)
) -> dict:
    symbols = payload.symbols or service.config.symbols.default_watchlist
    symbols = _require_symbols(symbols)
    await service.cache.invalidate_batch()
    job = enqueue_batch_refresh(symbols)
    logger.info("Queued batch refresh job %s for %d symbols", job.id, len(symbols))
    return {"job_id": job.id, "status": "queued", "symbols": symbols}


@router.post("/market/rate-limit/reset", response_model=ServiceStats)
def reset_rate_limit(
    service: MarketDataService = Depends(get_market_data_service),
) -> ServiceStats:
    service.reset_rate_limit()
    return service.get_service_stats()


@router.delete("/market/cache")
async def clear_cache(service: MarketDataService = Depends(get_market_data_service)) -> dict:
    removed = await service.clear_all_cache()
    return {"removed": removed}


@router.get("/market/{symbol}", response_model=MarketRecord)
async def market_quote(
    symbol: str, service: MarketDataService = Depends(get_market_data_service)
) -> MarketRecord:
    return await service.get_market_data(_require_symbol(symbol))


@router.get("/gems/{symbol}", response_model=GemData)
async def gem_data(
    symbol: str, service: MarketDataService = Depends(get_market_data_service)
) -> GemData:
    return await service.get_gem_data(_require_symbol(symbol))


@router.get("/providers/diagnostics", response_model=DiagnosticReport)
async def provider_diagnostics(
    service: MarketDataService = Depends(get_market_data_service),
) -> DiagnosticReport:
    return await service.run_diagnostics()


@router.get("/stocks/scan", response_model=list[MarketRecord])
async def scan_stocks(
    symbols: list[str] | None = Query(default=None),
    service: MarketDataService = Depends(get_market_data_service),
) -> list[MarketRecord]:
    if symbols is not None:
        symbols = _require_symbols(symbols)
    return await service.scan_stocks(symbols)
