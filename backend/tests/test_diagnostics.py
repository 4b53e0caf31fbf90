import asyncio
from unittest.mock import AsyncMock, patch

from app.pipeline.throttle import Throttle
from app.providers.alpha_vantage import AlphaVantageProvider
from app.providers.base import ProviderHttpError, ProviderRateLimited
from app.providers.key_rotation import KeyRotation
from app.providers.selector import ProviderChain
from app.services.diagnostics import run_provider_diagnostics
from fakes import FakeClock, StubProvider, make_service


def _stock(name: str, working: bool = True, error: Exception | None = None) -> StubProvider:
    prices = {"AAPL": 189.5} if working else {}
    return StubProvider(name, prices=prices, errors=[error] if error else None)


def _crypto(name: str, working: bool = True) -> StubProvider:
    prices = {"bitcoin": 50000.0} if working else {}
    return StubProvider(name, "crypto", prices=prices)


def _run(stock, crypto):
    return asyncio.run(run_provider_diagnostics(ProviderChain(stock, crypto)))


def test_all_providers_working_is_low_severity() -> None:
    report = _run([_stock("a"), _stock("b")], [_crypto("c")])

    assert report.severity == "low"
    assert report.working_providers == ["a", "b", "c"]
    assert report.recommendations == []
    assert all(check.price for check in report.checks)


def test_checks_use_asset_appropriate_symbols() -> None:
    report = _run([_stock("a")], [_crypto("c")])

    symbols = {check.provider: check.symbol for check in report.checks}
    assert symbols == {"a": "AAPL", "c": "bitcoin"}


def test_no_stock_provider_is_critical() -> None:
    report = _run([_stock("a", False), _stock("b", False)], [_crypto("c")])

    assert report.severity == "critical"
    assert report.working_providers == ["c"]


def test_single_working_stock_provider_is_high() -> None:
    report = _run([_stock("a", False), _stock("b"), _stock("d", False)], [_crypto("c")])

    assert report.severity == "high"
    assert any("Only b" in line for line in report.recommendations)


def test_primary_down_with_backups_is_medium() -> None:
    report = _run([_stock("a", False), _stock("b"), _stock("d")], [_crypto("c")])

    assert report.severity == "medium"
    assert any(line.startswith("a is down") for line in report.recommendations)


def test_no_crypto_provider_raises_severity_to_high() -> None:
    report = _run([_stock("a"), _stock("b")], [_crypto("c", False)])

    assert report.severity == "high"
    assert report.checks[-1].error_kind == "parse_error"


def test_error_kinds_produce_recommendations() -> None:
    limited = _stock("a", error=ProviderRateLimited("a", "AAPL"))
    broken = _stock("b", error=ProviderHttpError("b", "AAPL", status=401))
    report = _run([limited, broken, _stock("d")], [_crypto("c")])

    kinds = {check.provider: check.error_kind for check in report.checks}
    assert kinds == {"a": "rate_limited", "b": "http_error", "d": None, "c": None}
    assert report.severity == "high"
    assert any("a is rate limited" in line for line in report.recommendations)
    assert any("API key" in line and "b" in line for line in report.recommendations)


def test_diagnostics_leave_breaker_untouched() -> None:
    stock = StubProvider("stub_stock", errors=[ProviderRateLimited("stub_stock", "AAPL")])
    service = make_service(stock=stock)

    report = asyncio.run(service.run_diagnostics())

    assert report.checks[0].error_kind == "rate_limited"
    assert service.rate_limit.is_limited() is False


def test_invalid_quote_is_reported_not_raised() -> None:
    bad_price = StubProvider("a", prices={"AAPL": -10.0})
    report = _run([bad_price, _stock("b")], [_crypto("c")])

    check = report.checks[0]
    assert check.working is False
    assert check.error_kind == "parse_error"
    assert report.working_providers == ["b", "c"]


def test_exhausted_key_pool_is_reported_with_usage() -> None:
    rotation = KeyRotation("alpha_vantage", ["key-a", "key-b"], clock=FakeClock())
    alpha = AlphaVantageProvider(Throttle(0.0), rotation)
    limited = {"Note": "Our standard API call frequency is 5 calls per minute."}

    with patch("app.providers.alpha_vantage.get_json", AsyncMock(return_value=limited)):
        report = _run([alpha, _stock("b")], [_crypto("c")])

    assert report.checks[0].error_kind == "rate_limited"
    assert [(usage.name, usage.usage, usage.active) for usage in report.api_keys] == [
        ("key_1", 1, False),
        ("key_2", 1, False),
    ]
    assert any("All alpha_vantage API keys are blocked" in line for line in report.recommendations)
    assert report.severity == "high"
