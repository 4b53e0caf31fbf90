import random

from app.pipeline.synthetic import FUNDAMENTAL_FIELDS, MockMarketGenerator


def test_mock_quote_stays_near_reference_price() -> None:
    generator = MockMarketGenerator(random.Random(1))

    record = generator.generate("bitcoin")

    assert record.provenance == "mock"
    assert record.asset_type == "crypto"
    assert record.symbol == "bitcoin"
    assert 45250.50 * 0.99 <= record.price <= 45250.50 * 1.01
    assert 0.84 <= record.change_percent <= 4.84


def test_mock_quote_for_unknown_symbol_has_stable_shape() -> None:
    generator = MockMarketGenerator(random.Random(2))

    prices = [generator.generate("ACME").price for _ in range(5)]

    assert min(prices) >= 10 * 0.99
    assert max(prices) / min(prices) <= 1.0203
    assert generator.generate("ACME").asset_type == "stock"


def test_generate_many_keeps_order() -> None:
    generator = MockMarketGenerator(random.Random(3))

    records = generator.generate_many(["AAPL", "ETH", "MSFT"])

    assert [record.symbol for record in records] == ["AAPL", "ETH", "MSFT"]
    assert [record.asset_type for record in records] == ["stock", "crypto", "stock"]


def test_fallback_quote_is_random_and_tagged() -> None:
    generator = MockMarketGenerator(random.Random(4))

    for _ in range(20):
        record = generator.generate_fallback("AAPL")
        assert record.provenance == "fallback"
        assert record.source == "random"
        assert 10 <= record.price <= 1010
        assert -10 <= record.change_percent <= 10


def test_fundamentals_are_in_range() -> None:
    generator = MockMarketGenerator(random.Random(5))

    fundamentals = generator.generate_fundamentals()

    assert tuple(fundamentals) == FUNDAMENTAL_FIELDS
    assert all(60 <= value <= 99 for value in fundamentals.values())
