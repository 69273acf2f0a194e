"""Boundary models: pipeline input, normalized trades, and Glass Box audit records.

These models are what the consumer layer sees. They serialize with camelCase
aliases and accept either snake_case or camelCase on input.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tradegen.core.types import Direction, ExecutionTime, Severity


class CamelModel(BaseModel):
    """Base model with camelCase aliases for the consumer contract."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(frozen=True)


class StrategySpec(CamelModel):
    """Free-text trading strategy supplied by the user."""

    id: str | None = None
    name: str = "Custom Strategy"
    content: str = ""


class PipelineConfig(CamelModel):
    """Per-run trade generation settings."""

    capital: float = Field(default=1000.0, gt=0)
    leverage: float = Field(default=1.0, ge=1, le=125)
    num_results: int = Field(default=3, ge=1, le=10)
    execution_time: ExecutionTime = "intraday"
    target_pct: float = Field(default=10.0, ge=0)
    min_ipe: float = Field(default=75.0, ge=0, le=95)
    ai_provider: str = "anthropic"
    ai_model: str | None = None
    api_keys: dict[str, str] = Field(default_factory=dict, repr=False)
    assets: list[str] | None = None
    min_risk_reward: float | None = Field(default=None, gt=0)
    max_entry_deviation: float = Field(default=0.05, gt=0, le=1)


class PipelineInput(CamelModel):
    strategy: StrategySpec
    config: PipelineConfig = Field(default_factory=PipelineConfig)


class TradeReasoning(FrozenCamelModel):
    why_asset: str = ""
    why_direction: str = ""
    why_entry: str = ""
    why_levels: str = ""


class CriterionMatch(FrozenCamelModel):
    criterion: str
    value: str = "N/A"
    threshold: str = "N/A"
    passed: bool = True


class ConfidenceFactor(FrozenCamelModel):
    factor: str
    weight: float = 0.0
    score: float = 0.0
    contribution: float = 0.0


class ValidationResult(FrozenCamelModel):
    """One validator verdict for one trade."""

    name: str
    passed: bool
    message: str
    value: Any = None
    threshold: Any = None
    severity: Severity = "error"


class TradeValidationOutcome(FrozenCamelModel):
    valid: bool
    results: tuple[ValidationResult, ...] = ()

    @property
    def failed(self) -> tuple[ValidationResult, ...]:
        return tuple(result for result in self.results if not result.passed)

    @property
    def failed_warnings(self) -> tuple[ValidationResult, ...]:
        return tuple(result for result in self.failed if result.severity == "warning")


class StepRecord(FrozenCamelModel):
    """Execution record of one orchestrated step."""

    name: str
    status: Literal["success", "failed"]
    optional: bool = False
    attempts: int = 1
    duration_ms: float = 0.0
    error: str | None = None
    output_summary: dict[str, Any] = Field(default_factory=dict)


class TokenUsage(FrozenCamelModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ConfidenceBreakdown(FrozenCamelModel):
    factors: tuple[ConfidenceFactor, ...] = ()
    total_weight: float = 0.0
    total_score: float = 0.0


class ValidationBreakdown(FrozenCamelModel):
    results: tuple[ValidationResult, ...] = ()
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0


class MarketContext(FrozenCamelModel):
    symbol: str
    current_price: float | None = None
    change_pct_24h: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    quote_volume_24h: float | None = None
    average_change: float = 0.0
    top_gainers: tuple[str, ...] = ()
    top_losers: tuple[str, ...] = ()


class RiskAssessment(FrozenCamelModel):
    level: Literal["low", "moderate", "high"]
    warnings: tuple[str, ...] = ()
    recommendation: str = ""


class RiskAnalysis(FrozenCamelModel):
    risk_reward_ratio: float
    risk_percent: float
    reward_percent: float
    capital: float
    leverage: float
    position_size: float
    max_loss: float
    potential_profit: float
    assessment: RiskAssessment


class AuditTrail(FrozenCamelModel):
    """Enough prompt/response context to reconstruct why a trade was produced."""

    execution_id: str
    provider: str
    model: str
    latency_ms: float
    token_usage: TokenUsage
    system_prompt: str
    user_prompt: str
    prompt_sha256: str
    response_sha256: str
    raw_candidate_json: str = "{}"
    pipeline_steps: tuple[StepRecord, ...] = ()

    @property
    def raw_candidate(self) -> dict[str, Any]:
        """A fresh copy of the candidate as the AI returned it."""
        return json.loads(self.raw_candidate_json)


class GlassBoxRecord(FrozenCamelModel):
    """Immutable audit bundle created once per accepted trade."""

    trade_id: str
    asset: str
    direction: Direction
    generated_at: datetime
    reasoning: TradeReasoning
    criteria_matched: tuple[CriterionMatch, ...]
    confidence: ConfidenceBreakdown
    validation: ValidationBreakdown
    market_context: MarketContext
    risk_analysis: RiskAnalysis
    audit: AuditTrail


class NormalizedTrade(CamelModel):
    """Canonical trade record. Derived ratios are recomputed from entry/TP/SL."""

    id: str
    strategy_id: str | None = None
    strategy_name: str = "Custom Strategy"
    asset: str
    direction: Direction
    entry: float
    take_profit: float
    stop_loss: float
    current_price: float | None = None
    risk_reward_ratio: float
    risk_percent: float
    reward_percent: float
    ipe: float
    summary: str = ""
    reasoning: TradeReasoning = Field(default_factory=TradeReasoning)
    criteria_matched: list[CriterionMatch] = Field(default_factory=list)
    confidence_factors: list[ConfidenceFactor] = Field(default_factory=list)
    status: Literal["pending", "active", "closed"] = "pending"
    selected: bool = False
    created_at: datetime
    leverage: float
    capital: float
    structural_warnings: list[str] = Field(default_factory=list)
    validation: TradeValidationOutcome | None = None
    glass_box: GlassBoxRecord | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ParseIssue(CamelModel):
    index: int
    errors: list[str]


class ValidationWarning(CamelModel):
    source: Literal["parser", "validator"]
    message: str
    index: int | None = None
    trade_id: str | None = None
    check: str | None = None


class InvalidTrade(CamelModel):
    trade: NormalizedTrade
    failed_validations: list[ValidationResult]


class TradeTally(FrozenCamelModel):
    trade_id: str
    asset: str
    valid: bool
    checks: int
    passed: int
    failed: int
    warnings: int


class RunSummary(FrozenCamelModel):
    """Run-level audit artifact."""

    execution_id: str
    generated_at: datetime
    total_generated: int
    total_valid: int
    total_invalid: int
    parse_error_count: int
    ai_provider: str
    ai_model: str
    latency_ms: float
    token_usage: TokenUsage
    pipeline_steps: tuple[StepRecord, ...] = ()
    validation_summary: tuple[TradeTally, ...] = ()


class GlassBoxData(CamelModel):
    trades: dict[str, GlassBoxRecord] = Field(default_factory=dict)
    summary: RunSummary


class PipelineOutput(CamelModel):
    """What the consumer layer renders after a successful run."""

    execution_id: str
    trades: list[NormalizedTrade]
    invalid_trades: list[InvalidTrade]
    parse_errors: list[ParseIssue]
    validation_warnings: list[ValidationWarning]
    glass_box_data: GlassBoxData
    per_step_metadata: list[StepRecord]
