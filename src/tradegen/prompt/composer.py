"""Deterministic prompt templating for the trade generation request."""

from __future__ import annotations

import hashlib
import json

from tradegen.core.models import StrategySpec
from tradegen.core.types import (
    ExecutionParams,
    MarketAnalysis,
    PositionSizing,
    PriceSummaryRow,
    PromptBundle,
    Thresholds,
    TradingContext,
)

MAX_PRICE_ROWS = 15
DEFAULT_STRATEGY_TEXT = "Generate trades based on technical analysis and current market conditions."

_EXAMPLE_TRADE = {
    "asset": "BTC/USDT",
    "strategy": "LONG",
    "entry": 95000.00,
    "takeProfit": 105000.00,
    "stopLoss": 90000.00,
    "ipe": 85,
    "summary": "Brief one-line summary of the trade thesis",
    "reasoning": {
        "whyAsset": "Detailed explanation of why this asset was selected from all candidates",
        "whyDirection": "Detailed explanation of why LONG or SHORT based on technical/fundamental factors",
        "whyEntry": "Explanation of how the entry price was determined",
        "whyLevels": "Explanation of how TP and SL levels were calculated, including R:R ratio",
    },
    "criteriaMatched": [
        {"criterion": "RSI oversold", "value": "28", "threshold": "<30", "passed": True},
        {"criterion": "Volume spike", "value": "+45%", "threshold": ">20%", "passed": True},
        {"criterion": "Near support", "value": "2.1%", "threshold": "<5%", "passed": True},
    ],
    "confidenceFactors": [
        {"factor": "Technical Signal Strength", "weight": 40, "score": 85, "contribution": 34},
        {"factor": "Risk Management Quality", "weight": 30, "score": 80, "contribution": 24},
        {"factor": "Market Context", "weight": 20, "score": 75, "contribution": 15},
        {"factor": "Volume Confirmation", "weight": 10, "score": 90, "contribution": 9},
    ],
}


class PromptComposer:
    """Builds system/user prompts from the trading context and strategy text."""

    def compose(self, context: TradingContext, strategy: StrategySpec) -> PromptBundle:
        system_prompt = build_system_prompt(context.thresholds)
        sections = [
            "# TRADE GENERATION REQUEST\n",
            build_strategy_section(strategy),
            build_market_data_section(context.prices_summary),
            build_market_analysis_section(context.market_analysis),
            build_config_section(context.position_sizing, context.execution_params, context.thresholds),
            build_output_format_section(context.num_results, context.thresholds),
        ]
        user_prompt = "\n".join(sections)
        full_prompt = f"{system_prompt}\n\n---\n\n{user_prompt}"
        return PromptBundle(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            full_prompt=full_prompt,
            metadata={
                "prompt_length": len(full_prompt),
                "estimated_tokens": -(-len(full_prompt) // 4),
                "prompt_sha256": hashlib.sha256(full_prompt.encode("utf-8")).hexdigest(),
                "strategy_name": strategy.name,
                "sections": ["strategy", "market_data", "analysis", "config", "output_format"],
            },
        )


def format_price(price: float) -> str:
    if price >= 1000:
        return f"{price:.2f}"
    if price >= 1:
        return f"{price:.4f}"
    return f"{price:.8f}"


def format_volume(value: float | None) -> str:
    if not value:
        return "N/A"
    if value >= 1e9:
        return f"${value / 1e9:.2f}B"
    if value >= 1e6:
        return f"${value / 1e6:.2f}M"
    if value >= 1e3:
        return f"${value / 1e3:.2f}K"
    return f"${value:.2f}"


def _signed_pct(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


def build_system_prompt(thresholds: Thresholds) -> str:
    return (
        "You are an expert cryptocurrency trading analyst with deep knowledge of technical analysis, "
        "market dynamics, and risk management.\n\n"
        "Your role is to analyze trading strategies and current market conditions to generate "
        "high-quality trade recommendations.\n\n"
        "IMPORTANT GUIDELINES:\n"
        f"1. Always prioritize risk management - never suggest trades with risk/reward ratio below "
        f"{thresholds.min_risk_reward:g}:1\n"
        "2. Be specific with entry, take profit, and stop loss levels\n"
        "3. Explain your reasoning clearly for transparency\n"
        "4. Consider current market conditions and volatility\n"
        f"5. Only recommend trades with high conviction (IPE score {thresholds.min_ipe:g}+)\n\n"
        "You must respond ONLY with valid JSON - no markdown, no explanations outside the JSON structure."
    )


def build_strategy_section(strategy: StrategySpec) -> str:
    content = strategy.content if strategy.content.strip() else DEFAULT_STRATEGY_TEXT
    return f"## USER'S TRADING STRATEGY: \"{strategy.name}\"\n\n{content}\n"


def build_market_data_section(rows: list[PriceSummaryRow]) -> str:
    lines = [
        "## CURRENT MARKET PRICES\n",
        "| Asset | Price | 24h Change | 24h High | 24h Low | Volume |",
        "|-------|-------|------------|----------|---------|--------|",
    ]
    for row in rows[:MAX_PRICE_ROWS]:
        change = _signed_pct(row.change_pct_24h) if row.change_pct_24h is not None else "N/A"
        high = format_price(row.high_24h) if row.high_24h else "N/A"
        low = format_price(row.low_24h) if row.low_24h else "N/A"
        lines.append(
            f"| {row.symbol} | {format_price(row.price)} | {change} | {high} | {low} | "
            f"{format_volume(row.quote_volume_24h)} |"
        )
    return "\n".join(lines) + "\n"


def build_market_analysis_section(analysis: MarketAnalysis) -> str:
    lines = ["## MARKET ANALYSIS\n", f"**Average 24h Change:** {_signed_pct(analysis.average_change)}"]
    if analysis.top_gainers:
        lines.append("\n**Top Gainers:**")
        lines.extend(f"- {m.symbol}: {_signed_pct(m.change_pct)}" for m in analysis.top_gainers)
    if analysis.top_losers:
        lines.append("\n**Top Losers:**")
        lines.extend(f"- {m.symbol}: {_signed_pct(m.change_pct)}" for m in analysis.top_losers)
    if analysis.high_volume:
        lines.append("\n**High Volume (24h quote volume above $1B):**")
        lines.extend(f"- {v.symbol}: {format_volume(v.quote_volume)}" for v in analysis.high_volume)
    if analysis.near_support:
        lines.append("\n**Near Support (potential long opportunities):**")
        lines.extend(f"- {s.symbol}: {s.distance_pct:.2f}% from 24h low" for s in analysis.near_support)
    if analysis.near_resistance:
        lines.append("\n**Near Resistance (potential short opportunities):**")
        lines.extend(f"- {r.symbol}: {r.distance_pct:.2f}% from 24h high" for r in analysis.near_resistance)
    return "\n".join(lines) + "\n"


def build_config_section(
    sizing: PositionSizing,
    params: ExecutionParams,
    thresholds: Thresholds,
) -> str:
    duration = f"{params.max_duration_hours:g} hours" if params.max_duration_hours is not None else "none"
    lines = [
        "## TRADING CONFIGURATION\n",
        f"- **Timeframe:** {params.timeframe} ({params.description})",
        f"- **Max Position Duration:** {duration}",
        f"- **Chart Timeframes:** {', '.join(params.chart_timeframes)}",
        f"- **Total Capital:** ${sizing.total_capital:,.2f}",
        f"- **Capital per Trade:** ${sizing.capital_per_trade:,.2f}",
        f"- **Leverage:** {sizing.leverage:g}x (suggested {params.suggested_leverage})",
        f"- **Effective Position Size:** ${sizing.effective_capital:,.2f}",
        f"- **Max Risk per Trade:** ${sizing.max_risk_per_trade:,.2f} ({sizing.max_risk_percent:g}%)",
        f"- **Number of Trades Required:** {sizing.num_trades}",
        f"- **Target Profit:** {params.target_percent:g}%",
        f"- **Minimum Risk/Reward:** {thresholds.min_risk_reward:g}:1",
    ]
    return "\n".join(lines) + "\n"


def build_output_format_section(num_results: int, thresholds: Thresholds) -> str:
    example = json.dumps([_EXAMPLE_TRADE], indent=2)
    return (
        "## REQUIRED OUTPUT FORMAT\n\n"
        f"You MUST respond with a JSON array containing exactly {num_results} trade recommendation(s).\n"
        "Each trade MUST follow this exact structure:\n\n"
        f"```json\n{example}\n```\n\n"
        "CRITICAL REQUIREMENTS:\n"
        f"1. IPE (Investment Potential Estimate) must be between {thresholds.min_ipe:g}-{thresholds.max_ipe:g}\n"
        f"2. Risk/Reward ratio must be at least {thresholds.min_risk_reward:g}:1\n"
        f"3. Entry price must be within {thresholds.max_entry_deviation * 100:g}% of current market price\n"
        f"4. Include at least {thresholds.min_criteria} criteria in criteriaMatched\n"
        f"5. Confidence factors weights must sum to {thresholds.confidence_weight_total:g}\n"
        "6. For LONG trades takeProfit > entry > stopLoss; for SHORT trades takeProfit < entry < stopLoss\n"
        "7. All prices must be realistic based on current market data\n"
        "8. DO NOT include any text outside the JSON array\n"
    )
