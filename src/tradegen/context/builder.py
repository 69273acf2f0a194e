"""Context building: market analysis, position sizing, and execution parameters.

Everything here is a pure function of the price map and the run config.
"""

from __future__ import annotations

from collections.abc import Mapping

from tradegen.core.config import (
    HIGH_VOLUME_THRESHOLD,
    MAX_IPE,
    MIN_CRITERIA,
    RISK_PERCENT_PER_TRADE,
    execution_params_for,
)
from tradegen.core.models import PipelineConfig
from tradegen.core.types import (
    ExecutionParams,
    LevelProximity,
    MarketAnalysis,
    Mover,
    PositionSizing,
    PriceQuote,
    PriceSummaryRow,
    Thresholds,
    TradingContext,
    VolumeLeader,
)

TOP_MOVERS = 3
MAX_HIGH_VOLUME = 5
RANGE_EDGE = 0.2


class ContextBuilder:
    """Turns raw quotes plus user config into the trading context."""

    def build(self, prices: Mapping[str, PriceQuote], config: PipelineConfig) -> TradingContext:
        execution_params = execution_params_for(config)
        return TradingContext(
            market_analysis=analyze_market(prices),
            position_sizing=position_sizing(config),
            execution_params=execution_params,
            thresholds=resolve_thresholds(config, execution_params),
            prices_summary=summarize_prices(prices),
            num_results=config.num_results,
        )


def analyze_market(prices: Mapping[str, PriceQuote]) -> MarketAnalysis:
    """Rank movers, flag high-volume assets, and find 24h range extremes.

    Equal 24h changes are ordered lexicographically by symbol so the output
    does not depend on the input ordering.
    """

    quotes = sorted(prices.values(), key=lambda quote: quote.symbol)
    with_change = [quote for quote in quotes if quote.change_pct_24h is not None]

    analysis = MarketAnalysis()
    if with_change:
        analysis.average_change = sum(q.change_pct_24h for q in with_change) / len(with_change)

    gainers = sorted(with_change, key=lambda q: (-q.change_pct_24h, q.symbol))
    losers = sorted(with_change, key=lambda q: (q.change_pct_24h, q.symbol))
    analysis.top_gainers = [Mover(q.symbol, q.change_pct_24h) for q in gainers[:TOP_MOVERS]]
    analysis.top_losers = [Mover(q.symbol, q.change_pct_24h) for q in losers[:TOP_MOVERS]]

    heavy = [
        q for q in quotes if q.quote_volume_24h is not None and q.quote_volume_24h > HIGH_VOLUME_THRESHOLD
    ]
    heavy.sort(key=lambda q: (-q.quote_volume_24h, q.symbol))
    analysis.high_volume = [VolumeLeader(q.symbol, q.quote_volume_24h) for q in heavy[:MAX_HIGH_VOLUME]]

    for quote in quotes:
        if not quote.high_24h or not quote.low_24h or not quote.price:
            continue
        span = quote.high_24h - quote.low_24h
        if span <= 0:
            continue
        position = (quote.price - quote.low_24h) / span
        if position < RANGE_EDGE:
            analysis.near_support.append(
                LevelProximity(quote.symbol, (quote.price - quote.low_24h) / quote.low_24h * 100)
            )
        elif position > 1 - RANGE_EDGE:
            analysis.near_resistance.append(
                LevelProximity(quote.symbol, (quote.high_24h - quote.price) / quote.price * 100)
            )
    return analysis


def position_sizing(config: PipelineConfig) -> PositionSizing:
    capital_per_trade = config.capital / config.num_results
    return PositionSizing(
        total_capital=config.capital,
        capital_per_trade=capital_per_trade,
        effective_capital=capital_per_trade * config.leverage,
        leverage=config.leverage,
        max_risk_per_trade=capital_per_trade * RISK_PERCENT_PER_TRADE / 100,
        max_risk_percent=RISK_PERCENT_PER_TRADE,
        num_trades=config.num_results,
    )


def resolve_thresholds(config: PipelineConfig, execution_params: ExecutionParams) -> Thresholds:
    """An explicit ``min_risk_reward`` wins over the execution-class default."""
    min_rr = config.min_risk_reward if config.min_risk_reward is not None else execution_params.min_risk_reward
    return Thresholds(
        min_risk_reward=min_rr,
        min_ipe=config.min_ipe,
        max_ipe=MAX_IPE,
        max_entry_deviation=config.max_entry_deviation,
        min_criteria=MIN_CRITERIA,
    )


def summarize_prices(prices: Mapping[str, PriceQuote]) -> list[PriceSummaryRow]:
    rows = [
        PriceSummaryRow(
            symbol=quote.symbol,
            price=quote.price,
            change_pct_24h=quote.change_pct_24h,
            high_24h=quote.high_24h,
            low_24h=quote.low_24h,
            quote_volume_24h=quote.quote_volume_24h,
        )
        for quote in prices.values()
    ]
    rows.sort(key=lambda row: (-(row.quote_volume_24h or 0.0), row.symbol))
    return rows
