from __future__ import annotations

import asyncio
import logging

from app.providers.base import ProviderError, QuoteProvider
from app.providers.selector import ProviderChain
from app.schemas.market import DiagnosticReport, ProviderCheck

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = ("low", "medium", "high", "critical")


def _raise_severity(current: str, candidate: str) -> str:
    return max(current, candidate, key=_SEVERITY_ORDER.index)


async def check_provider(provider: QuoteProvider, symbol: str) -> ProviderCheck:
    await provider.throttle.acquire()
    try:
        record = await provider.fetch(symbol)
    except ProviderError as exc:
        logger.info("Diagnostic check failed for %s: %s", provider.name, exc)
        return ProviderCheck(
            provider=provider.name,
            asset_type=provider.asset_type,
            symbol=symbol,
            working=False,
            error_kind=exc.kind,
            error=str(exc),
        )
    return ProviderCheck(
        provider=provider.name,
        asset_type=provider.asset_type,
        symbol=symbol,
        working=True,
        price=record.price,
    )


async def run_provider_diagnostics(
    chain: ProviderChain,
    stock_symbol: str = "AAPL",
    crypto_symbol: str = "bitcoin",
) -> DiagnosticReport:
    """Probe every configured provider concurrently.

    Read-only: results are neither cached nor fed to the rate-limit tracker.
    """
    providers = chain.all_providers()
    checks = list(
        await asyncio.gather(
            *(
                check_provider(p, crypto_symbol if p.asset_type == "crypto" else stock_symbol)
                for p in providers
            )
        )
    )

    severity = "low"
    recommendations: list[str] = []
    stock_checks = [check for check in checks if check.asset_type == "stock"]
    working_stock = [check.provider for check in stock_checks if check.working]
    primary = chain.stock[0].name if chain.stock else None

    if stock_checks and not working_stock:
        severity = "critical"
        recommendations.append("No stock provider is working; stock quotes will be synthetic.")
    elif len(working_stock) == 1 and len(stock_checks) > 1:
        severity = "high"
        recommendations.append(f"Only {working_stock[0]} is answering stock quotes.")
    elif primary is not None and primary not in working_stock:
        severity = "medium"
        recommendations.append(f"{primary} is down; {working_stock[0]} is available as backup.")

    crypto_checks = [check for check in checks if check.asset_type == "crypto"]
    if crypto_checks and not any(check.working for check in crypto_checks):
        severity = _raise_severity(severity, "high")
        recommendations.append("No crypto provider is working; crypto quotes will be synthetic.")

    for check in checks:
        if check.error_kind == "rate_limited":
            recommendations.append(f"{check.provider} is rate limited; back off before retrying.")
        elif check.error_kind == "http_error":
            recommendations.append(f"Check the API key and endpoint for {check.provider}.")

    api_keys = [usage for provider in providers for usage in provider.key_usage()]
    for name in dict.fromkeys(usage.provider for usage in api_keys):
        pool = [usage for usage in api_keys if usage.provider == name]
        if not any(usage.active for usage in pool):
            severity = _raise_severity(severity, "medium")
            recommendations.append(f"All {name} API keys are blocked; add keys or wait.")

    logger.info(
        "Provider diagnostic: %d/%d working, severity %s",
        sum(check.working for check in checks),
        len(checks),
        severity,
    )
    return DiagnosticReport(
        checks=checks,
        working_providers=[check.provider for check in checks if check.working],
        severity=severity,
        recommendations=recommendations,
        api_keys=api_keys,
    )
