"""Trade validator chain."""

from tradegen.validation.checks import (
    ConfidenceWeightsCheck,
    EntryDeviationCheck,
    IpeRangeCheck,
    LeverageBandCheck,
    PriceLevelCheck,
    RiskRewardCheck,
    TradeCheck,
    TradeValidator,
    ValidationContext,
    VolumeCheck,
    create_default_validator,
)

__all__ = [
    "ConfidenceWeightsCheck",
    "EntryDeviationCheck",
    "IpeRangeCheck",
    "LeverageBandCheck",
    "PriceLevelCheck",
    "RiskRewardCheck",
    "TradeCheck",
    "TradeValidator",
    "ValidationContext",
    "VolumeCheck",
    "create_default_validator",
]
