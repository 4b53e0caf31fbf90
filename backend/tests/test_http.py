import asyncio
import socket
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pytest

from app.providers.base import (
    ProviderHttpError,
    ProviderParseError,
    ProviderRateLimited,
    ProviderTimeout,
)
from app.providers.http import build_url, get_json


def _get(**kwargs):
    return asyncio.run(get_json("yahoo", "https://example.test/quote", symbol="AAPL", **kwargs))


def test_build_url_joins_path_and_encodes_params() -> None:
    url = build_url("https://api.example.test/", "/v1/quote", {"symbol": "BRK.B", "token": "a b"})

    assert url == "https://api.example.test/v1/quote?symbol=BRK.B&token=a+b"


def test_build_url_without_params() -> None:
    assert build_url("https://api.example.test", "/v1/tickers/btc-bitcoin") == (
        "https://api.example.test/v1/tickers/btc-bitcoin"
    )


def test_get_json_decodes_body() -> None:
    with patch("app.providers.http._read", return_value='{"c": 189.5}') as read:
        payload = _get(headers={"X-Test": "1"}, timeout=3.0)

    assert payload == {"c": 189.5}
    read.assert_called_once_with("https://example.test/quote", {"X-Test": "1"}, 3.0)


def test_http_429_is_rate_limited() -> None:
    error = HTTPError("https://example.test/quote", 429, "Too Many Requests", None, None)
    with patch("app.providers.http._read", side_effect=error):
        with pytest.raises(ProviderRateLimited) as exc_info:
            _get()

    assert exc_info.value.kind == "rate_limited"
    assert exc_info.value.symbol == "AAPL"


def test_other_http_status_is_http_error() -> None:
    error = HTTPError("https://example.test/quote", 503, "Service Unavailable", None, None)
    with patch("app.providers.http._read", side_effect=error):
        with pytest.raises(ProviderHttpError) as exc_info:
            _get()

    assert exc_info.value.status == 503
    assert exc_info.value.kind == "http_error"


def test_socket_timeout_is_timeout() -> None:
    with patch("app.providers.http._read", side_effect=socket.timeout("timed out")):
        with pytest.raises(ProviderTimeout):
            _get()


def test_url_error_wrapping_timeout_is_timeout() -> None:
    with patch("app.providers.http._read", side_effect=URLError(TimeoutError("timed out"))):
        with pytest.raises(ProviderTimeout):
            _get()


def test_connection_failure_is_http_error() -> None:
    with patch("app.providers.http._read", side_effect=URLError("connection refused")):
        with pytest.raises(ProviderHttpError) as exc_info:
            _get()

    assert exc_info.value.status is None


def test_invalid_json_is_parse_error() -> None:
    with patch("app.providers.http._read", return_value="<html>down</html>"):
        with pytest.raises(ProviderParseError):
            _get()
