"""AI-driven trade signal pipeline."""

from tradegen.core.errors import PipelineStepError, TradeGenError
from tradegen.core.models import PipelineConfig, PipelineInput, PipelineOutput, StrategySpec
from tradegen.pipeline.service import SignalPipeline, SignalRunResult

__all__ = [
    "PipelineConfig",
    "PipelineInput",
    "PipelineOutput",
    "PipelineStepError",
    "SignalPipeline",
    "SignalRunResult",
    "StrategySpec",
    "TradeGenError",
]

__version__ = "0.1.0"
