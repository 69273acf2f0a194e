"""Glass Box audit records: why each accepted trade exists, plus a run summary."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from tradegen.core.models import (
    AuditTrail,
    ConfidenceBreakdown,
    ConfidenceFactor,
    CriterionMatch,
    GlassBoxData,
    GlassBoxRecord,
    MarketContext,
    NormalizedTrade,
    RiskAnalysis,
    RiskAssessment,
    RunSummary,
    StepRecord,
    TokenUsage,
    TradeReasoning,
    TradeTally,
    TradeValidationOutcome,
    ValidationBreakdown,
)
from tradegen.core.types import AIResponse, MarketAnalysis, PriceQuote, PromptBundle, Thresholds

MARKET_CONTEXT_MOVERS = 3


@dataclass(slots=True)
class EnrichmentContext:
    execution_id: str
    generated_at: datetime
    prompt: PromptBundle
    ai_response: AIResponse
    thresholds: Thresholds
    market_analysis: MarketAnalysis = field(default_factory=MarketAnalysis)
    prices: Mapping[str, PriceQuote] = field(default_factory=dict)
    pipeline_steps: tuple[StepRecord, ...] = ()


class GlassBoxEnricher:
    """Builds one frozen record per valid trade and a single run summary."""

    def enrich(
        self,
        trade: NormalizedTrade,
        outcome: TradeValidationOutcome,
        context: EnrichmentContext,
    ) -> GlassBoxRecord:
        quote = context.prices.get(trade.asset)
        return GlassBoxRecord(
            trade_id=trade.id,
            asset=trade.asset,
            direction=trade.direction,
            generated_at=context.generated_at,
            reasoning=build_reasoning(trade, quote),
            criteria_matched=tuple(trade.criteria_matched or basic_criteria(trade, context.thresholds)),
            confidence=confidence_breakdown(trade),
            validation=validation_breakdown(outcome),
            market_context=market_context(trade.asset, quote, context.market_analysis),
            risk_analysis=risk_analysis(trade),
            audit=audit_trail(trade, context),
        )

    def build(
        self,
        valid: Sequence[tuple[NormalizedTrade, TradeValidationOutcome]],
        checked: Sequence[tuple[NormalizedTrade, TradeValidationOutcome]],
        parse_error_count: int,
        context: EnrichmentContext,
    ) -> GlassBoxData:
        """Enrich ``valid`` trades and summarize every trade in ``checked``."""
        records = {trade.id: self.enrich(trade, outcome, context) for trade, outcome in valid}
        return GlassBoxData(trades=records, summary=self.summarize(checked, parse_error_count, context))

    def summarize(
        self,
        checked: Sequence[tuple[NormalizedTrade, TradeValidationOutcome]],
        parse_error_count: int,
        context: EnrichmentContext,
    ) -> RunSummary:
        response = context.ai_response
        total_valid = sum(1 for _, outcome in checked if outcome.valid)
        return RunSummary(
            execution_id=context.execution_id,
            generated_at=context.generated_at,
            total_generated=len(checked) + parse_error_count,
            total_valid=total_valid,
            total_invalid=len(checked) - total_valid,
            parse_error_count=parse_error_count,
            ai_provider=response.provider,
            ai_model=response.model,
            latency_ms=response.latency_ms,
            token_usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            pipeline_steps=_snapshot_steps(context.pipeline_steps),
            validation_summary=tuple(_tally(trade, outcome) for trade, outcome in checked),
        )


def build_reasoning(trade: NormalizedTrade, quote: PriceQuote | None) -> TradeReasoning:
    """Keep the AI's literal reasoning and fill only the blanks."""
    given = trade.reasoning
    return TradeReasoning(
        why_asset=given.why_asset or _explain_asset(trade, quote),
        why_direction=given.why_direction
        or f"{trade.direction} position recommended with {trade.ipe:g}% confidence based on technical analysis",
        why_entry=given.why_entry or _explain_entry(trade),
        why_levels=given.why_levels or _explain_levels(trade),
    )


def _explain_asset(trade: NormalizedTrade, quote: PriceQuote | None) -> str:
    if quote is None:
        return f"{trade.asset} selected based on strategy criteria"
    text = f"{trade.asset} selected. Current price: ${quote.price:,.2f}"
    if quote.change_pct_24h is not None:
        sign = "+" if quote.change_pct_24h >= 0 else ""
        text += f", {sign}{quote.change_pct_24h:.2f}% in 24h"
    return text


def _explain_entry(trade: NormalizedTrade) -> str:
    if not trade.current_price:
        return f"Entry at ${trade.entry:,.2f}"
    deviation = (trade.entry - trade.current_price) / trade.current_price * 100
    side = "above" if deviation >= 0 else "below"
    return f"Entry at ${trade.entry:,.2f}, {abs(deviation):.2f}% {side} current price"


def _explain_levels(trade: NormalizedTrade) -> str:
    tp_pct = (trade.take_profit - trade.entry) / trade.entry * 100
    sl_pct = (trade.stop_loss - trade.entry) / trade.entry * 100
    return (
        f"TP at ${trade.take_profit:,.2f} ({tp_pct:+.2f}%), SL at ${trade.stop_loss:,.2f} ({sl_pct:+.2f}%). "
        f"R:R ratio: {trade.risk_reward_ratio:g}:1"
    )


def basic_criteria(trade: NormalizedTrade, thresholds: Thresholds) -> list[CriterionMatch]:
    return [
        CriterionMatch(
            criterion="Risk/Reward Ratio",
            value=f"{trade.risk_reward_ratio:g}:1",
            threshold=f">= {thresholds.min_risk_reward:g}:1",
            passed=trade.risk_reward_ratio >= thresholds.min_risk_reward,
        ),
        CriterionMatch(
            criterion="IPE Score",
            value=f"{trade.ipe:g}%",
            threshold=f">= {thresholds.min_ipe:g}%",
            passed=trade.ipe >= thresholds.min_ipe,
        ),
        CriterionMatch(
            criterion="Risk per Trade",
            value=f"{trade.risk_percent:g}%",
            threshold="<= 5%",
            passed=trade.risk_percent <= 5,
        ),
    ]


def confidence_breakdown(trade: NormalizedTrade) -> ConfidenceBreakdown:
    factors: Sequence[ConfidenceFactor] = trade.confidence_factors
    return ConfidenceBreakdown(
        factors=tuple(factors),
        total_weight=round(sum(f.weight for f in factors), 2),
        total_score=round(sum(f.contribution for f in factors), 2),
    )


def validation_breakdown(outcome: TradeValidationOutcome) -> ValidationBreakdown:
    passed = sum(1 for result in outcome.results if result.passed)
    return ValidationBreakdown(
        results=tuple(result.model_copy(deep=True) for result in outcome.results),
        total=len(outcome.results),
        passed=passed,
        failed=len(outcome.results) - passed,
        warnings=len(outcome.failed_warnings),
    )


def market_context(asset: str, quote: PriceQuote | None, analysis: MarketAnalysis) -> MarketContext:
    return MarketContext(
        symbol=asset,
        current_price=quote.price if quote else None,
        change_pct_24h=quote.change_pct_24h if quote else None,
        high_24h=quote.high_24h if quote else None,
        low_24h=quote.low_24h if quote else None,
        quote_volume_24h=quote.quote_volume_24h if quote else None,
        average_change=round(analysis.average_change, 4),
        top_gainers=tuple(m.symbol for m in analysis.top_gainers[:MARKET_CONTEXT_MOVERS]),
        top_losers=tuple(m.symbol for m in analysis.top_losers[:MARKET_CONTEXT_MOVERS]),
    )


def risk_analysis(trade: NormalizedTrade) -> RiskAnalysis:
    if trade.direction == "LONG":
        reward = trade.take_profit - trade.entry
        risk = trade.entry - trade.stop_loss
    else:
        reward = trade.entry - trade.take_profit
        risk = trade.stop_loss - trade.entry
    ratio = reward / risk if risk > 0 else 0.0
    risk_percent = risk / trade.entry * 100
    reward_percent = reward / trade.entry * 100
    position_size = trade.capital * trade.leverage

    return RiskAnalysis(
        risk_reward_ratio=round(ratio, 2),
        risk_percent=round(risk_percent, 2),
        reward_percent=round(reward_percent, 2),
        capital=trade.capital,
        leverage=trade.leverage,
        position_size=round(position_size, 2),
        max_loss=round(position_size * risk_percent / 100, 2),
        potential_profit=round(position_size * reward_percent / 100, 2),
        assessment=assess_risk(ratio, trade.leverage, risk_percent),
    )


def assess_risk(risk_reward_ratio: float, leverage: float, risk_percent: float) -> RiskAssessment:
    level = "moderate"
    warnings: list[str] = []

    if risk_reward_ratio < 1.5:
        level = "high"
        warnings.append("Low risk/reward ratio")
    if leverage > 20:
        level = "high"
        warnings.append("High leverage")
    elif leverage > 10:
        warnings.append("Elevated leverage")
    if risk_percent > 5:
        level = "high"
        warnings.append("Large stop loss distance")
    if not warnings:
        level = "low"

    recommendation = {
        "high": "Consider reducing position size or leverage",
        "moderate": "Risk is acceptable, ensure proper position sizing",
        "low": "Risk parameters are well-balanced",
    }[level]
    return RiskAssessment(level=level, warnings=tuple(warnings), recommendation=recommendation)


def audit_trail(trade: NormalizedTrade, context: EnrichmentContext) -> AuditTrail:
    response = context.ai_response
    return AuditTrail(
        execution_id=context.execution_id,
        provider=response.provider,
        model=response.model,
        latency_ms=response.latency_ms,
        token_usage=TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        ),
        system_prompt=context.prompt.system_prompt,
        user_prompt=context.prompt.user_prompt,
        prompt_sha256=_sha256(context.prompt.full_prompt),
        response_sha256=_sha256(response.content),
        raw_candidate_json=json.dumps(trade.raw, sort_keys=True, ensure_ascii=False, default=str),
        pipeline_steps=_snapshot_steps(context.pipeline_steps),
    )


def _tally(trade: NormalizedTrade, outcome: TradeValidationOutcome) -> TradeTally:
    passed = sum(1 for result in outcome.results if result.passed)
    return TradeTally(
        trade_id=trade.id,
        asset=trade.asset,
        valid=outcome.valid,
        checks=len(outcome.results),
        passed=passed,
        failed=len(outcome.results) - passed,
        warnings=len(outcome.failed_warnings),
    )


def _snapshot_steps(steps: Sequence[StepRecord]) -> tuple[StepRecord, ...]:
    return tuple(step.model_copy(deep=True) for step in steps)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
