"""Trade validator chain: pure checks with fixed severities."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from tradegen.core.models import NormalizedTrade, TradeValidationOutcome, ValidationResult
from tradegen.core.types import CheckOutcome, ExecutionParams, PriceQuote, Severity, Thresholds

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


@dataclass(slots=True)
class ValidationContext:
    thresholds: Thresholds
    execution_params: ExecutionParams
    leverage: float = 1.0
    prices: Mapping[str, PriceQuote] = field(default_factory=dict)


class TradeCheck(Protocol):
    name: str
    severity: Severity

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome: ...


class RiskRewardCheck:
    name = "risk_reward"
    severity: Severity = "error"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        minimum = context.thresholds.min_risk_reward
        reward = abs(trade.take_profit - trade.entry)
        risk = abs(trade.entry - trade.stop_loss)
        ratio = reward / risk if risk > 0 else 0.0
        passed = ratio + _EPSILON >= minimum
        verdict = "meets minimum" if passed else "below minimum"
        return CheckOutcome(
            passed=passed,
            message=f"R:R {ratio:.2f}:1 {verdict} {minimum:g}:1",
            value=round(ratio, 2),
            threshold=minimum,
        )


class PriceLevelCheck:
    name = "price_levels"
    severity: Severity = "error"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        entry, take_profit, stop_loss = trade.entry, trade.take_profit, trade.stop_loss
        if trade.direction == "LONG":
            passed = take_profit > entry > stop_loss
            message = (
                "LONG: TP above entry, SL below entry"
                if passed
                else f"LONG invalid: TP ({take_profit:g}) should be > entry ({entry:g}), "
                f"SL ({stop_loss:g}) should be < entry"
            )
        else:
            passed = take_profit < entry < stop_loss
            message = (
                "SHORT: TP below entry, SL above entry"
                if passed
                else f"SHORT invalid: TP ({take_profit:g}) should be < entry ({entry:g}), "
                f"SL ({stop_loss:g}) should be > entry"
            )
        return CheckOutcome(
            passed=passed,
            message=message,
            value={"entry": entry, "takeProfit": take_profit, "stopLoss": stop_loss, "direction": trade.direction},
            threshold="coherent with direction",
        )


class IpeRangeCheck:
    name = "ipe_range"
    severity: Severity = "error"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        low, high = context.thresholds.min_ipe, context.thresholds.max_ipe
        passed = low <= trade.ipe <= high
        where = "within" if passed else "outside"
        return CheckOutcome(
            passed=passed,
            message=f"IPE {trade.ipe:g} {where} range ({low:g}-{high:g})",
            value=trade.ipe,
            threshold={"min": low, "max": high},
        )


class LeverageBandCheck:
    name = "leverage_band"
    severity: Severity = "warning"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        params = context.execution_params
        leverage = trade.leverage
        passed = params.leverage_min <= leverage <= params.leverage_max
        where = "within" if passed else "outside"
        return CheckOutcome(
            passed=passed,
            message=f"Leverage {leverage:g}x {where} {params.timeframe} band {params.suggested_leverage}",
            value=leverage,
            threshold={"min": params.leverage_min, "max": params.leverage_max},
        )


class EntryDeviationCheck:
    name = "entry_deviation"
    severity: Severity = "warning"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        max_pct = context.thresholds.max_entry_deviation * 100
        market_price = trade.current_price
        if not market_price:
            quote = context.prices.get(trade.asset)
            market_price = quote.price if quote is not None else None
        if not market_price:
            return CheckOutcome(
                passed=True,
                message="Skipped: current price not available",
                value=None,
                threshold=max_pct,
            )

        deviation_pct = abs(trade.entry - market_price) / market_price * 100
        passed = deviation_pct <= max_pct + _EPSILON
        verdict = "within" if passed else "exceeds"
        return CheckOutcome(
            passed=passed,
            message=f"Entry {deviation_pct:.2f}% from current price ({verdict} max {max_pct:g}%)",
            value=round(deviation_pct, 2),
            threshold=max_pct,
        )


class ConfidenceWeightsCheck:
    name = "confidence_weights"
    severity: Severity = "warning"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        expected = context.thresholds.confidence_weight_total
        total = sum(factor.weight for factor in trade.confidence_factors)
        passed = abs(total - expected) <= 1e-6
        return CheckOutcome(
            passed=passed,
            message=(
                f"Confidence weights sum to {total:g}"
                if passed
                else f"Confidence weights sum to {total:g}, expected {expected:g}"
            ),
            value=total,
            threshold=expected,
        )


class VolumeCheck:
    name = "volume"
    severity: Severity = "warning"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        minimum = context.thresholds.min_quote_volume
        quote = context.prices.get(trade.asset)
        volume = quote.quote_volume_24h if quote is not None else None
        if not volume:
            return CheckOutcome(
                passed=True,
                message="Skipped: volume data not available",
                value=None,
                threshold=minimum,
            )
        passed = volume >= minimum
        verdict = "meets" if passed else "below"
        return CheckOutcome(
            passed=passed,
            message=f"24h volume ${volume / 1e6:.2f}M {verdict} ${minimum / 1e6:.0f}M minimum",
            value=volume,
            threshold=minimum,
        )


class TradeValidator:
    """Ordered chain of checks. Validity is the AND over error-severity results."""

    def __init__(self, checks: list[TradeCheck] | None = None) -> None:
        self._checks: list[TradeCheck] = list(checks or [])

    def add(self, check: TradeCheck) -> TradeValidator:
        if not callable(getattr(check, "check", None)):
            raise TypeError("validator check must define a check() method")
        self._checks.append(check)
        return self

    def remove(self, name: str) -> TradeValidator:
        self._checks = [check for check in self._checks if check.name != name]
        return self

    def names(self) -> list[str]:
        return [check.name for check in self._checks]

    def __len__(self) -> int:
        return len(self._checks)

    def validate(self, trade: NormalizedTrade, context: ValidationContext) -> TradeValidationOutcome:
        results: list[ValidationResult] = []
        for check in self._checks:
            try:
                outcome = check.check(trade, context)
            except Exception as exc:
                logger.warning("validator_error check=%s trade_id=%s error=%s", check.name, trade.id, exc)
                results.append(
                    ValidationResult(
                        name=check.name,
                        passed=False,
                        message=f"Validator error: {exc}",
                        severity="error",
                    )
                )
                continue
            results.append(
                ValidationResult(
                    name=check.name,
                    passed=outcome.passed,
                    message=outcome.message,
                    value=outcome.value,
                    threshold=outcome.threshold,
                    severity=check.severity,
                )
            )

        valid = all(result.passed for result in results if result.severity == "error")
        return TradeValidationOutcome(valid=valid, results=tuple(results))


def create_default_validator(*, include_volume: bool = False) -> TradeValidator:
    validator = (
        TradeValidator()
        .add(RiskRewardCheck())
        .add(PriceLevelCheck())
        .add(IpeRangeCheck())
        .add(LeverageBandCheck())
        .add(EntryDeviationCheck())
        .add(ConfidenceWeightsCheck())
    )
    if include_volume:
        validator.add(VolumeCheck())
    return validator
