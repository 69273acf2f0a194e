"""Runtime settings, execution-time guidance table, and API key resolution."""

from __future__ import annotations

import os
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tradegen.core.models import PipelineConfig
from tradegen.core.types import ExecutionParams

DEFAULT_ASSETS: tuple[str, ...] = (
    "BTC/USDT",
    "ETH/USDT",
    "SOL/USDT",
    "BNB/USDT",
    "XRP/USDT",
    "ADA/USDT",
    "AVAX/USDT",
    "DOT/USDT",
    "MATIC/USDT",
    "LINK/USDT",
    "DOGE/USDT",
    "ATOM/USDT",
    "UNI/USDT",
    "LTC/USDT",
    "FIL/USDT",
)

MAX_IPE = 95.0
MIN_CRITERIA = 3
RISK_PERCENT_PER_TRADE = 2.0
HIGH_VOLUME_THRESHOLD = 1_000_000_000.0

EXECUTION_PARAMS: dict[str, ExecutionParams] = {
    "target": ExecutionParams(
        timeframe="target",
        description="Target-based: No time limit, closes on TP or SL only",
        max_duration_hours=None,
        min_risk_reward=2.0,
        leverage_min=1,
        leverage_max=10,
        chart_timeframes=("4h", "1d"),
    ),
    "scalping": ExecutionParams(
        timeframe="scalping",
        description="Scalping: Quick trades within 1 hour",
        max_duration_hours=1,
        min_risk_reward=1.5,
        leverage_min=10,
        leverage_max=50,
        chart_timeframes=("1m", "5m", "15m"),
    ),
    "intraday": ExecutionParams(
        timeframe="intraday",
        description="Intraday: Trades closed within 24 hours",
        max_duration_hours=24,
        min_risk_reward=2.0,
        leverage_min=5,
        leverage_max=20,
        chart_timeframes=("15m", "1h", "4h"),
    ),
    "swing": ExecutionParams(
        timeframe="swing",
        description="Swing trading: Positions held up to 7 days",
        max_duration_hours=24 * 7,
        min_risk_reward=2.5,
        leverage_min=1,
        leverage_max=5,
        chart_timeframes=("4h", "1d", "1w"),
    ),
}


class Settings(BaseSettings):
    """Process settings loaded from env and .env files."""

    app_name: str = "tradegen"
    environment: str = Field(default="dev", pattern="^(dev|test|prod)$")
    log_level: str = "INFO"

    exchange_base_url: str = "https://api.binance.com/api/v3"
    stats_top_n: int = Field(default=5, ge=0)

    price_timeout_s: float = Field(default=15.0, gt=0)
    ai_timeout_s: float = Field(default=60.0, gt=0)
    transform_timeout_s: float = Field(default=5.0, gt=0)
    price_retries: int = Field(default=2, ge=0)
    ai_retries: int = Field(default=1, ge=0)
    retry_backoff_s: float = Field(default=1.0, ge=0)
    max_retry_delay_s: float = Field(default=30.0, ge=0)

    max_output_tokens: int = Field(default=4000, gt=0)
    temperature: float = Field(default=0.7, ge=0, le=2)
    telemetry_buffer_size: int = Field(default=500, gt=0)

    openrouter_referer: str = ""
    openrouter_title: str = "tradegen"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="TRADEGEN_", extra="ignore")


def execution_params_for(config: PipelineConfig) -> ExecutionParams:
    """Return the guidance row for the run's execution-time class."""
    base = EXECUTION_PARAMS[config.execution_time]
    return ExecutionParams(
        timeframe=base.timeframe,
        description=base.description,
        max_duration_hours=base.max_duration_hours,
        min_risk_reward=base.min_risk_reward,
        leverage_min=base.leverage_min,
        leverage_max=base.leverage_max,
        chart_timeframes=base.chart_timeframes,
        target_percent=config.target_pct,
    )


def resolve_api_key(config: PipelineConfig, provider: str) -> str:
    """Resolve a provider key: run config first, then ``<PROVIDER>_API_KEY``.

    Returns an empty string when neither source has a value; the AI step
    turns that into a fatal configuration error.
    """

    env_name = f"{provider.strip().upper()}_API_KEY"
    return str(_coalesce(config.api_keys.get(provider), os.getenv(env_name), "")).strip()


def _coalesce(*values: Any) -> Any:
    """Return first non-empty value, preserving falsy numerics such as 0."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        return value
    return ""
