from __future__ import annotations

import asyncio

import httpx
import pytest

from tradegen.core.errors import PriceFeedError
from tradegen.feed.prices import PriceFeedClient, to_exchange_symbol

BULK = [
    {"symbol": "BTCUSDT", "price": "95000.50"},
    {"symbol": "ETHUSDT", "price": "3000.10"},
    {"symbol": "SOLUSDT", "price": "not-a-number"},
]


def _ticker(symbol: str) -> dict[str, str]:
    return {
        "symbol": symbol,
        "priceChange": "1200.5",
        "priceChangePercent": "2.5",
        "highPrice": "96000",
        "lowPrice": "93000",
        "volume": "12345.6",
        "quoteVolume": "2500000000",
    }


def test_to_exchange_symbol() -> None:
    assert to_exchange_symbol("btc/usdt") == "BTCUSDT"
    assert to_exchange_symbol("ETHUSDT") == "ETHUSDT"


def test_fetch_reports_missing_assets_and_isolates_stats_failures(monkeypatch) -> None:
    stats_calls: list[str] = []

    async def fake_get(self, url, *, params=None):  # type: ignore[no-untyped-def]
        del self
        request = httpx.Request("GET", url)
        if url.endswith("/ticker/price"):
            return httpx.Response(status_code=200, request=request, json=BULK)
        symbol = params["symbol"]
        stats_calls.append(symbol)
        if symbol == "ETHUSDT":
            return httpx.Response(status_code=500, request=request, text="upstream error")
        return httpx.Response(status_code=200, request=request, json=_ticker(symbol))

    monkeypatch.setattr("httpx.AsyncClient.get", fake_get)

    client = PriceFeedClient(base_url="https://exchange.test/api/v3", stats_top_n=5)
    snapshot = asyncio.run(client.fetch(["BTC/USDT", "ETH/USDT", "NOPE/USDT", "SOL/USDT"]))

    assert sorted(snapshot.prices) == ["BTC/USDT", "ETH/USDT"]
    assert snapshot.metadata.missing_assets == ["NOPE/USDT", "SOL/USDT"]
    assert snapshot.metadata.assets_requested == 4
    assert snapshot.metadata.assets_received == 2
    assert sorted(stats_calls) == ["BTCUSDT", "ETHUSDT"]
    assert snapshot.metadata.stats_fetched == ["BTC/USDT"]
    assert list(snapshot.metadata.stats_failures) == ["ETH/USDT"]

    btc = snapshot.prices["BTC/USDT"]
    assert btc.price == 95000.50
    assert btc.change_pct_24h == 2.5
    assert btc.quote_volume_24h == 2.5e9
    assert btc.has_stats

    eth = snapshot.prices["ETH/USDT"]
    assert eth.price == 3000.10
    assert eth.change_pct_24h is None


def test_stats_limited_to_top_n(monkeypatch) -> None:
    stats_calls: list[str] = []

    async def fake_get(self, url, *, params=None):  # type: ignore[no-untyped-def]
        del self
        request = httpx.Request("GET", url)
        if params is None:
            return httpx.Response(status_code=200, request=request, json=BULK)
        stats_calls.append(params["symbol"])
        return httpx.Response(status_code=200, request=request, json=_ticker(params["symbol"]))

    monkeypatch.setattr("httpx.AsyncClient.get", fake_get)

    snapshot = asyncio.run(PriceFeedClient(stats_top_n=1).fetch(["ETH/USDT", "BTC/USDT"]))

    assert stats_calls == ["ETHUSDT"]
    assert snapshot.metadata.stats_fetched == ["ETH/USDT"]


def test_bulk_failure_raises_retryable_error(monkeypatch) -> None:
    async def fake_get(self, url, *, params=None):  # type: ignore[no-untyped-def]
        del self, params
        return httpx.Response(status_code=503, request=httpx.Request("GET", url), text="maintenance")

    monkeypatch.setattr("httpx.AsyncClient.get", fake_get)

    with pytest.raises(PriceFeedError, match="status=503") as exc_info:
        asyncio.run(PriceFeedClient().fetch(["BTC/USDT"]))

    assert exc_info.value.retryable is True


def test_bulk_transport_error_raises_price_feed_error(monkeypatch) -> None:
    async def fake_get(self, url, *, params=None):  # type: ignore[no-untyped-def]
        del self, params
        raise httpx.ConnectError("connection refused", request=httpx.Request("GET", url))

    monkeypatch.setattr("httpx.AsyncClient.get", fake_get)

    with pytest.raises(PriceFeedError, match="connection refused"):
        asyncio.run(PriceFeedClient().fetch(["BTC/USDT"]))
