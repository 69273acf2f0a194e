"""Internal step records passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Direction = Literal["LONG", "SHORT"]
Severity = Literal["error", "warning"]
ExecutionTime = Literal["target", "scalping", "intraday", "swing"]


@dataclass(slots=True)
class PriceQuote:
    """Current exchange price with optional 24h statistics."""

    symbol: str
    price: float
    source: str = "binance"
    price_change_24h: float | None = None
    change_pct_24h: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    volume_24h: float | None = None
    quote_volume_24h: float | None = None

    @property
    def has_stats(self) -> bool:
        return self.change_pct_24h is not None


@dataclass(slots=True)
class PriceMetadata:
    source: str
    fetched_at: datetime
    assets_requested: int
    assets_received: int
    missing_assets: list[str] = field(default_factory=list)
    stats_fetched: list[str] = field(default_factory=list)
    stats_failures: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PriceSnapshot:
    """Output of the price feed step."""

    prices: dict[str, PriceQuote]
    metadata: PriceMetadata


@dataclass(slots=True)
class Mover:
    symbol: str
    change_pct: float


@dataclass(slots=True)
class VolumeLeader:
    symbol: str
    quote_volume: float


@dataclass(slots=True)
class LevelProximity:
    symbol: str
    distance_pct: float


@dataclass(slots=True)
class MarketAnalysis:
    average_change: float = 0.0
    top_gainers: list[Mover] = field(default_factory=list)
    top_losers: list[Mover] = field(default_factory=list)
    high_volume: list[VolumeLeader] = field(default_factory=list)
    near_support: list[LevelProximity] = field(default_factory=list)
    near_resistance: list[LevelProximity] = field(default_factory=list)


@dataclass(slots=True)
class PositionSizing:
    total_capital: float
    capital_per_trade: float
    effective_capital: float
    leverage: float
    max_risk_per_trade: float
    max_risk_percent: float
    num_trades: int


@dataclass(frozen=True, slots=True)
class ExecutionParams:
    """Per execution-time class guidance shared by prompt and validators."""

    timeframe: str
    description: str
    max_duration_hours: float | None
    min_risk_reward: float
    leverage_min: float
    leverage_max: float
    chart_timeframes: tuple[str, ...]
    target_percent: float = 0.0

    @property
    def suggested_leverage(self) -> str:
        return f"{self.leverage_min:g}-{self.leverage_max:g}x"


@dataclass(frozen=True, slots=True)
class Thresholds:
    """Hard numeric constraints stated in the prompt and enforced by validators."""

    min_risk_reward: float
    min_ipe: float
    max_ipe: float
    max_entry_deviation: float
    min_criteria: int = 3
    confidence_weight_total: float = 100.0
    min_quote_volume: float = 100_000_000.0


@dataclass(slots=True)
class PriceSummaryRow:
    symbol: str
    price: float
    change_pct_24h: float | None
    high_24h: float | None
    low_24h: float | None
    quote_volume_24h: float | None


@dataclass(slots=True)
class TradingContext:
    """Output of the context step."""

    market_analysis: MarketAnalysis
    position_sizing: PositionSizing
    execution_params: ExecutionParams
    thresholds: Thresholds
    prices_summary: list[PriceSummaryRow]
    num_results: int


@dataclass(slots=True)
class PromptBundle:
    """Output of the prompt step."""

    system_prompt: str
    user_prompt: str
    full_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TokenUsageRecord:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class GenerationOptions:
    max_tokens: int = 4000
    temperature: float = 0.7
    model: str | None = None


@dataclass(slots=True)
class GenerationResult:
    """Uniform adapter output regardless of vendor."""

    content: str
    usage: TokenUsageRecord
    raw: dict[str, Any]
    model: str
    finish_reason: str | None = None


@dataclass(slots=True)
class AIResponse:
    """Output of the AI call step."""

    content: str
    usage: TokenUsageRecord
    raw: dict[str, Any]
    provider: str
    model: str
    latency_ms: float
    finish_reason: str | None = None


@dataclass(slots=True)
class CheckOutcome:
    """What a single validator reports before the chain stamps name and severity."""

    passed: bool
    message: str
    value: Any = None
    threshold: Any = None
