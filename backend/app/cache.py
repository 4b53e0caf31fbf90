from __future__ import annotations

import datetime
import json
import logging
import time
from collections.abc import Callable

from pydantic import ValidationError

from app.schemas.market import BatchCacheStats, MarketRecord
from app.store import KeyValueStore

logger = logging.getLogger(__name__)

MARKET_PREFIX = "market_"
BATCH_DATA_KEY = "market_data_batch"
BATCH_TIMESTAMP_KEY = "market_data_last_update"
FUNDAMENTALS_PREFIX = "gem_fundamentals_"


def market_key(symbol: str) -> str:
    return f"{MARKET_PREFIX}{symbol}"


def fundamentals_key(symbol: str) -> str:
    return f"{FUNDAMENTALS_PREFIX}{symbol}"


def _is_batch_key(key: str) -> bool:
    return key in (BATCH_DATA_KEY, BATCH_TIMESTAMP_KEY)


class MarketCache:
    """Per-symbol and whole-batch market record cache over an injected store.

    Store failures are logged and reported as misses; nothing here raises
    into the retrieval pipeline.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: float,
        extended_ttl: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.extended_ttl = extended_ttl
        self.clock = clock
        self.writes = 0
        self.batch_writes = 0

    async def _read(self, key: str) -> str | None:
        try:
            return await self.store.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

    async def _write(self, key: str, value: str) -> bool:
        try:
            await self.store.set(key, value)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
            return False
        return True

    async def get(self, symbol: str, extended: bool = False) -> MarketRecord | None:
        raw = await self._read(market_key(symbol))
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            timestamp = float(entry["timestamp"])
            record = MarketRecord.model_validate(entry["data"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError):
            logger.warning("Discarding unreadable cache entry for %s", symbol)
            return None

        max_age = self.extended_ttl if extended else self.ttl
        if self.clock() - timestamp >= max_age:
            return None
        return record.tagged("cache")

    async def set(self, symbol: str, record: MarketRecord) -> bool:
        if record.provenance == "fallback":
            logger.debug("Not caching fallback record for %s", symbol)
            return False
        entry = {"data": record.model_dump(mode="json"), "timestamp": self.clock()}
        stored = await self._write(market_key(symbol), json.dumps(entry))
        if stored:
            self.writes += 1
        return stored

    async def _batch_timestamp(self) -> float | None:
        raw = await self._read(BATCH_TIMESTAMP_KEY)
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    async def get_batch(self) -> dict[str, MarketRecord] | None:
        timestamp = await self._batch_timestamp()
        if timestamp is None:
            return None
        age = self.clock() - timestamp
        if age >= self.ttl:
            logger.info("Batch cache expired (%.0fs old), needs refresh", age)
            return None

        raw = await self._read(BATCH_DATA_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            records = {
                symbol: MarketRecord.model_validate(data) for symbol, data in payload.items()
            }
        except (json.JSONDecodeError, AttributeError, TypeError, ValidationError):
            logger.warning("Discarding unreadable batch cache")
            return None

        logger.debug("Using batch cache (%.0fs old) for %d symbols", age, len(records))
        return records

    async def set_batch(self, records: dict[str, MarketRecord]) -> bool:
        payload = {
            symbol: record.model_dump(mode="json")
            for symbol, record in records.items()
            if record.provenance != "fallback"
        }
        stored = await self._write(BATCH_DATA_KEY, json.dumps(payload))
        if stored:
            stored = await self._write(BATCH_TIMESTAMP_KEY, repr(self.clock()))
        if stored:
            self.batch_writes += 1
            logger.info("Saved batch cache with %d symbols", len(payload))
        return stored

    async def invalidate_batch(self) -> None:
        try:
            await self.store.delete(BATCH_TIMESTAMP_KEY)
        except Exception as exc:
            logger.warning("Could not invalidate batch cache: %s", exc)

    async def batch_stats(self) -> BatchCacheStats:
        timestamp = await self._batch_timestamp()
        raw = await self._read(BATCH_DATA_KEY)
        if timestamp is None or not raw:
            return BatchCacheStats()
        try:
            symbol_count = len(json.loads(raw))
        except (json.JSONDecodeError, TypeError):
            symbol_count = 0
        age = max(0.0, self.clock() - timestamp)
        return BatchCacheStats(
            is_valid=age < self.ttl,
            age_seconds=age,
            symbol_count=symbol_count,
            last_update=datetime.datetime.fromtimestamp(timestamp, tz=datetime.UTC),
            next_refresh_in=max(0.0, self.ttl - age),
        )

    async def purge_stale(self, max_age: float) -> int:
        try:
            keys = await self.store.keys(MARKET_PREFIX)
        except Exception as exc:
            logger.warning("Could not list cache keys: %s", exc)
            return 0

        now = self.clock()
        stale: list[str] = []
        for key in keys:
            if _is_batch_key(key):
                continue
            raw = await self._read(key)
            if not raw:
                continue
            try:
                timestamp = float(json.loads(raw)["timestamp"])
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                stale.append(key)
                continue
            if now - timestamp > max_age:
                stale.append(key)

        if not stale:
            return 0
        try:
            removed = await self.store.delete(*stale)
        except Exception as exc:
            logger.warning("Could not purge stale cache entries: %s", exc)
            return 0
        logger.info("Purged %d stale cache entries", removed)
        return removed

    async def clear(self) -> int:
        try:
            keys = await self.store.keys(MARKET_PREFIX)
            keys += await self.store.keys(FUNDAMENTALS_PREFIX)
            removed = await self.store.delete(*keys) if keys else 0
        except Exception as exc:
            logger.warning("Could not clear cache: %s", exc)
            return 0
        self.writes = 0
        self.batch_writes = 0
        logger.info("All cache cleared (%d keys)", removed)
        return removed

    async def get_fundamentals(self, symbol: str) -> dict[str, int] | None:
        raw = await self._read(fundamentals_key(symbol))
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            return {str(name): int(value) for name, value in payload.items()}
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            return None

    async def set_fundamentals(self, symbol: str, fundamentals: dict[str, int]) -> None:
        await self._write(fundamentals_key(symbol), json.dumps(fundamentals))
