import asyncio
import json

from app.cache import (
    BATCH_DATA_KEY,
    BATCH_TIMESTAMP_KEY,
    MarketCache,
    fundamentals_key,
    market_key,
)
from app.schemas.market import MarketRecord
from app.store import MemoryStore
from fakes import FakeClock


class FailingStore:
    async def get(self, key: str) -> str | None:
        raise ConnectionError("store unavailable")

    async def set(self, key: str, value: str) -> None:
        raise ConnectionError("store unavailable")

    async def delete(self, *keys: str) -> int:
        raise ConnectionError("store unavailable")

    async def keys(self, prefix: str) -> list[str]:
        raise ConnectionError("store unavailable")


def _record(symbol: str = "AAPL", price: float = 189.5, provenance: str = "real") -> MarketRecord:
    return MarketRecord(
        symbol=symbol,
        price=price,
        change=1.25,
        change_percent=0.66,
        provenance=provenance,
        source="yahoo",
    )


def _cache(store=None, clock=None) -> MarketCache:
    return MarketCache(
        store or MemoryStore(), ttl=120.0, extended_ttl=600.0, clock=clock or FakeClock()
    )


def test_cache_roundtrip_tags_record_as_cache() -> None:
    store = MemoryStore()
    cache = _cache(store)

    stored = asyncio.run(cache.set("AAPL", _record()))
    cached = asyncio.run(cache.get("AAPL"))

    assert stored is True
    assert cache.writes == 1
    assert cached is not None
    assert cached.provenance == "cache"
    assert cached.price == 189.5
    assert cached.source == "yahoo"
    entry = json.loads(store.data[market_key("AAPL")])
    assert set(entry) == {"data", "timestamp"}


def test_entry_expires_just_past_ttl_but_survives_extended_window() -> None:
    clock = FakeClock()
    cache = _cache(clock=clock)
    asyncio.run(cache.set("AAPL", _record()))

    clock.advance(119.999)
    assert asyncio.run(cache.get("AAPL")) is not None

    clock.advance(0.002)
    assert asyncio.run(cache.get("AAPL")) is None
    extended = asyncio.run(cache.get("AAPL", extended=True))
    assert extended is not None
    assert extended.provenance == "cache"

    clock.advance(600)
    assert asyncio.run(cache.get("AAPL", extended=True)) is None


def test_fallback_records_are_never_cached() -> None:
    store = MemoryStore()
    cache = _cache(store)

    stored = asyncio.run(cache.set("AAPL", _record(provenance="fallback")))

    assert stored is False
    assert cache.writes == 0
    assert store.data == {}


def test_store_failures_read_as_misses() -> None:
    cache = _cache(FailingStore())

    assert asyncio.run(cache.get("AAPL")) is None
    assert asyncio.run(cache.set("AAPL", _record())) is False
    assert asyncio.run(cache.get_batch()) is None
    assert asyncio.run(cache.purge_stale(10)) == 0
    assert asyncio.run(cache.clear()) == 0
    assert cache.writes == 0


def test_unreadable_entry_is_discarded() -> None:
    store = MemoryStore()
    store.data[market_key("AAPL")] = "{not json"
    cache = _cache(store)

    assert asyncio.run(cache.get("AAPL")) is None


def test_batch_roundtrip_skips_fallback_records() -> None:
    store = MemoryStore()
    cache = _cache(store)
    records = {
        "AAPL": _record(),
        "bitcoin": _record("bitcoin", 50000.0, provenance="mock"),
        "XYZ": _record("XYZ", 12.0, provenance="fallback"),
    }

    assert asyncio.run(cache.set_batch(records)) is True
    batch = asyncio.run(cache.get_batch())

    assert batch is not None
    assert set(batch) == {"AAPL", "bitcoin"}
    assert batch["bitcoin"].provenance == "mock"
    assert cache.batch_writes == 1
    assert BATCH_TIMESTAMP_KEY in store.data


def test_batch_is_invalid_one_millisecond_past_ttl() -> None:
    clock = FakeClock()
    cache = _cache(clock=clock)
    asyncio.run(cache.set_batch({"AAPL": _record()}))

    clock.advance(120.001)

    assert asyncio.run(cache.get_batch()) is None
    stats = asyncio.run(cache.batch_stats())
    assert stats.is_valid is False
    assert stats.symbol_count == 1
    assert stats.next_refresh_in == 0.0


def test_invalidate_batch_drops_validity_only() -> None:
    store = MemoryStore()
    cache = _cache(store)
    asyncio.run(cache.set_batch({"AAPL": _record()}))

    asyncio.run(cache.invalidate_batch())

    assert asyncio.run(cache.get_batch()) is None
    assert BATCH_DATA_KEY in store.data


def test_batch_stats_for_fresh_batch() -> None:
    clock = FakeClock()
    cache = _cache(clock=clock)
    asyncio.run(cache.set_batch({"AAPL": _record(), "MSFT": _record("MSFT", 410.0)}))
    clock.advance(20)

    stats = asyncio.run(cache.batch_stats())

    assert stats.is_valid is True
    assert stats.age_seconds == 20
    assert stats.symbol_count == 2
    assert stats.next_refresh_in == 100
    assert stats.last_update is not None


def test_batch_stats_when_empty() -> None:
    stats = asyncio.run(_cache().batch_stats())

    assert stats.is_valid is False
    assert stats.symbol_count == 0
    assert stats.last_update is None


def test_purge_stale_keeps_batch_and_fresh_entries() -> None:
    clock = FakeClock()
    store = MemoryStore()
    cache = _cache(store, clock)
    asyncio.run(cache.set("OLD", _record("OLD")))
    asyncio.run(cache.set_batch({"AAPL": _record()}))
    clock.advance(300)
    asyncio.run(cache.set("NEW", _record("NEW")))
    store.data[market_key("BROKEN")] = "garbage"

    removed = asyncio.run(cache.purge_stale(240))

    assert removed == 2
    assert market_key("OLD") not in store.data
    assert market_key("BROKEN") not in store.data
    assert market_key("NEW") in store.data
    assert BATCH_DATA_KEY in store.data
    assert BATCH_TIMESTAMP_KEY in store.data


def test_clear_removes_market_and_fundamentals_keys() -> None:
    store = MemoryStore()
    store.data["unrelated"] = "keep"
    cache = _cache(store)
    asyncio.run(cache.set("AAPL", _record()))
    asyncio.run(cache.set_batch({"AAPL": _record()}))
    asyncio.run(cache.set_fundamentals("AAPL", {"team": 80}))

    removed = asyncio.run(cache.clear())

    assert removed == 4
    assert store.data == {"unrelated": "keep"}
    assert cache.writes == 0
    assert cache.batch_writes == 0


def test_fundamentals_roundtrip() -> None:
    store = MemoryStore()
    cache = _cache(store)
    fundamentals = {"team": 71, "tech": 88, "community": 64, "adoption": 93}

    asyncio.run(cache.set_fundamentals("ETH", fundamentals))

    assert fundamentals_key("ETH") in store.data
    assert asyncio.run(cache.get_fundamentals("ETH")) == fundamentals
    assert asyncio.run(cache.get_fundamentals("SOL")) is None
