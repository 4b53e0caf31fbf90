from __future__ import annotations

import asyncio
import json
import socket
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from app.providers.base import (
    ProviderHttpError,
    ProviderParseError,
    ProviderRateLimited,
    ProviderTimeout,
)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


def build_url(base_url: str, path: str, params: dict[str, str] | None = None) -> str:
    url = f"{base_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def _read(url: str, headers: dict[str, str], timeout: float) -> str:
    request = Request(url, headers={**DEFAULT_HEADERS, **headers})
    with urlopen(request, timeout=timeout) as response:
        return response.read().decode("utf-8")


async def get_json(
    provider: str,
    url: str,
    *,
    symbol: str | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 8.0,
) -> Any:
    try:
        body = await asyncio.wait_for(
            asyncio.to_thread(_read, url, headers or {}, timeout), timeout=timeout
        )
    except HTTPError as exc:
        if exc.code == 429:
            raise ProviderRateLimited(provider, symbol, "HTTP 429") from exc
        raise ProviderHttpError(provider, symbol, status=exc.code) from exc
    except (TimeoutError, socket.timeout) as exc:
        raise ProviderTimeout(provider, symbol, "request timed out") from exc
    except URLError as exc:
        if isinstance(exc.reason, (TimeoutError, socket.timeout)):
            raise ProviderTimeout(provider, symbol, "request timed out") from exc
        raise ProviderHttpError(provider, symbol, str(exc.reason)) from exc
    except (OSError, HTTPException) as exc:
        raise ProviderHttpError(provider, symbol, str(exc)) from exc

    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProviderParseError(provider, symbol, "invalid JSON") from exc
