from __future__ import annotations

import asyncio
import logging
from collections import Counter

from app.config.logging import configure_logging
from app.config.settings import settings
from app.services.market_data import MarketDataService, build_market_data_service

logger = logging.getLogger(__name__)


async def _refresh(service: MarketDataService, symbols: list[str]) -> dict:
    records = await service.force_batch_refresh(symbols)
    purged = await service.purge_stale_cache()
    provenance = Counter(record.provenance for record in records)
    logger.info(
        "Batch refresh finished: %d symbols, %s, %d stale entries purged",
        len(records),
        dict(provenance),
        purged,
    )
    return {
        "symbols": len(records),
        "provenance": dict(provenance),
        "purged": purged,
        "rate_limited": service.rate_limit.is_limited(),
    }


def run_batch_refresh(symbols: list[str] | None = None) -> dict:
    configure_logging(settings.log_level)
    service = build_market_data_service(settings)
    return asyncio.run(_refresh(service, symbols or settings.symbols.default_watchlist))
