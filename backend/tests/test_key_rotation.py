import pytest

from app.providers.key_rotation import KeyRotation
from fakes import FakeClock


def test_least_used_open_key_is_chosen() -> None:
    rotation = KeyRotation("alpha_vantage", ["a", "b", "c"], clock=FakeClock())
    first, second, third = rotation.keys
    rotation.record_use(first)
    rotation.record_use(first)
    rotation.record_use(second)

    assert rotation.next_key() is third
    rotation.block(third)
    assert rotation.next_key() is second


def test_blocked_key_reopens_after_block_window() -> None:
    clock = FakeClock()
    rotation = KeyRotation("alpha_vantage", ["only"], block_seconds=60.0, clock=clock)
    key = rotation.next_key()
    rotation.block(key)

    clock.advance(59.9)
    assert rotation.next_key() is None
    assert rotation.usage()[0].active is False

    clock.advance(0.1)
    assert rotation.next_key() is key
    assert rotation.usage()[0].blocked_until is None


def test_key_is_retired_near_daily_limit_until_midnight() -> None:
    clock = FakeClock()
    rotation = KeyRotation("alpha_vantage", ["only"], daily_limit=20, clock=clock)
    key = rotation.keys[0]
    for _ in range(19):
        rotation.record_use(key)

    assert rotation.next_key() is None
    usage = rotation.usage()[0]
    assert usage.usage == 19
    assert usage.available == 1
    assert usage.active is False

    clock.advance(24 * 3600)
    assert rotation.next_key() is key
    assert rotation.usage()[0].usage == 0


def test_usage_report_hides_key_values() -> None:
    rotation = KeyRotation("alpha_vantage", ["secret-1", " secret-2 ", "secret-1"], clock=FakeClock())

    report = rotation.usage()

    assert [item.name for item in report] == ["key_1", "key_2"]
    assert {item.provider for item in report} == {"alpha_vantage"}
    assert all(item.limit == 500 and item.available == 500 for item in report)
    assert "secret" not in str([item.model_dump() for item in report])


def test_empty_key_list_is_rejected() -> None:
    with pytest.raises(ValueError):
        KeyRotation("alpha_vantage", ["", "  "])
