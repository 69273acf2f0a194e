"""Exchange REST price feed with isolated, concurrent 24h-statistics fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from tradegen.core.errors import PriceFeedError
from tradegen.core.types import PriceMetadata, PriceQuote, PriceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE_BASE_URL = "https://api.binance.com/api/v3"


def to_exchange_symbol(symbol: str) -> str:
    """Translate an internal ``BASE/QUOTE`` pair to the exchange form (``BASEQUOTE``)."""
    return symbol.replace("/", "").strip().upper()


class PriceFeedClient:
    """Fetches bulk prices plus per-asset 24h statistics for the top-N assets."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_EXCHANGE_BASE_URL,
        timeout_s: float = 10.0,
        stats_top_n: int = 5,
        source: str = "binance",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._stats_top_n = stats_top_n
        self._source = source

    async def fetch(self, assets: Sequence[str]) -> PriceSnapshot:
        """Return current quotes for ``assets``.

        The bulk call is fatal on failure. 24h statistics are best effort: a
        failed stats call leaves that quote without 24h fields and is reported
        in ``metadata.stats_failures``.
        """

        requested = list(dict.fromkeys(assets))
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_s)) as client:
            bulk = await self._fetch_bulk(client)
            prices: dict[str, PriceQuote] = {}
            for symbol in requested:
                price = bulk.get(to_exchange_symbol(symbol))
                if price is not None:
                    prices[symbol] = PriceQuote(symbol=symbol, price=price, source=self._source)

            stats_targets = [symbol for symbol in requested[: self._stats_top_n] if symbol in prices]
            outcomes = await asyncio.gather(
                *(self._fetch_24h_stats(client, symbol) for symbol in stats_targets),
                return_exceptions=True,
            )

        stats_fetched: list[str] = []
        stats_failures: dict[str, str] = {}
        for symbol, outcome in zip(stats_targets, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                stats_failures[symbol] = str(outcome) or type(outcome).__name__
                logger.warning("stats_24h_failed symbol=%s error=%s", symbol, outcome)
                continue
            _apply_stats(prices[symbol], outcome)
            stats_fetched.append(symbol)

        metadata = PriceMetadata(
            source=self._source,
            fetched_at=datetime.now(UTC),
            assets_requested=len(requested),
            assets_received=len(prices),
            missing_assets=[symbol for symbol in requested if symbol not in prices],
            stats_fetched=stats_fetched,
            stats_failures=stats_failures,
        )
        return PriceSnapshot(prices=prices, metadata=metadata)

    async def _fetch_bulk(self, client: httpx.AsyncClient) -> dict[str, float]:
        url = f"{self._base_url}/ticker/price"
        try:
            response = await client.get(url)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as exc:
            raise PriceFeedError(
                f"Exchange price request failed (status={exc.response.status_code})"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise PriceFeedError(f"Exchange price request failed: {exc}") from exc

        if not isinstance(rows, list):
            raise PriceFeedError("Exchange price response is not a list")

        prices: dict[str, float] = {}
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                prices[str(row["symbol"])] = float(row["price"])
            except (KeyError, TypeError, ValueError):
                continue
        return prices

    async def _fetch_24h_stats(self, client: httpx.AsyncClient, symbol: str) -> dict[str, float]:
        url = f"{self._base_url}/ticker/24hr"
        response = await client.get(url, params={"symbol": to_exchange_symbol(symbol)})
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected 24h ticker payload for {symbol}")
        return {
            "price_change": _decimal(body, "priceChange"),
            "price_change_percent": _decimal(body, "priceChangePercent"),
            "high": _decimal(body, "highPrice"),
            "low": _decimal(body, "lowPrice"),
            "volume": _decimal(body, "volume"),
            "quote_volume": _decimal(body, "quoteVolume"),
        }


def _decimal(body: dict[str, Any], key: str) -> float:
    if key not in body:
        raise ValueError(f"24h ticker payload missing '{key}'")
    return float(body[key])


def _apply_stats(quote: PriceQuote, stats: dict[str, float]) -> None:
    quote.price_change_24h = stats["price_change"]
    quote.change_pct_24h = stats["price_change_percent"]
    quote.high_24h = stats["high"]
    quote.low_24h = stats["low"]
    quote.volume_24h = stats["volume"]
    quote.quote_volume_24h = stats["quote_volume"]
