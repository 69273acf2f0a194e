"""Public entry point: run the pipeline and assemble the consumer output."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from tradegen.ai.client import AIClient
from tradegen.context.builder import ContextBuilder
from tradegen.core.config import Settings
from tradegen.core.errors import PipelineStepError
from tradegen.core.models import PipelineInput, PipelineOutput
from tradegen.core.telemetry import PipelineTelemetry
from tradegen.feed.prices import PriceFeedClient
from tradegen.glassbox.builder import GlassBoxEnricher
from tradegen.parsing.response import ParseResult, ResponseParser
from tradegen.pipeline.orchestrator import Orchestrator, PipelineRun, StepName
from tradegen.pipeline.steps import PipelineComponents, ValidationReport, build_steps
from tradegen.prompt.composer import PromptComposer
from tradegen.providers.registry import ProviderRegistry, default_registry
from tradegen.validation.checks import TradeValidator, create_default_validator


@dataclass(slots=True)
class SignalRunResult:
    execution_id: str
    output: PipelineOutput | None
    error: PipelineStepError | None
    telemetry: PipelineTelemetry

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"executionId": self.execution_id, "ok": self.ok}
        if self.output is not None:
            payload["output"] = self.output.to_payload()
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        payload["telemetry"] = self.telemetry.summary()
        return payload


class SignalPipeline:
    """Composes the default components into an orchestrated run."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        components: PipelineComponents | None = None,
        registry: ProviderRegistry | None = None,
        validator: TradeValidator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.components = components or default_components(self.settings, registry=registry, validator=validator)
        self.orchestrator = Orchestrator(
            build_steps(self.components, self.settings),
            logger=logger or logging.getLogger("tradegen.pipeline"),
            backoff_s=self.settings.retry_backoff_s,
            max_retry_delay_s=self.settings.max_retry_delay_s,
            telemetry_buffer_size=self.settings.telemetry_buffer_size,
        )

    async def generate(self, pipeline_input: PipelineInput, *, execution_id: str | None = None) -> SignalRunResult:
        run = await self.orchestrator.run(pipeline_input, execution_id=execution_id)
        return _to_result(run)

    def generate_sync(self, pipeline_input: PipelineInput, *, execution_id: str | None = None) -> SignalRunResult:
        return _to_result(self.orchestrator.run_sync(pipeline_input, execution_id=execution_id))


def default_components(
    settings: Settings,
    *,
    registry: ProviderRegistry | None = None,
    validator: TradeValidator | None = None,
) -> PipelineComponents:
    return PipelineComponents(
        price_feed=PriceFeedClient(
            base_url=settings.exchange_base_url,
            timeout_s=settings.price_timeout_s,
            stats_top_n=settings.stats_top_n,
        ),
        context_builder=ContextBuilder(),
        composer=PromptComposer(),
        ai_client=AIClient(
            registry or default_registry(settings),
            max_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
        ),
        parser=ResponseParser(),
        validator=validator or create_default_validator(),
        enricher=GlassBoxEnricher(),
    )


def assemble_output(run: PipelineRun) -> PipelineOutput:
    parsed: ParseResult = run.context.result(StepName.PARSE_RESPONSE)
    report: ValidationReport = run.context.result(StepName.VALIDATE_TRADES)
    return PipelineOutput(
        execution_id=run.execution_id,
        trades=[trade for trade, _ in report.valid],
        invalid_trades=report.invalid,
        parse_errors=parsed.parse_errors,
        validation_warnings=report.warnings,
        glass_box_data=run.context.result(StepName.ENRICH_GLASS_BOX),
        per_step_metadata=list(run.steps),
    )


def _to_result(run: PipelineRun) -> SignalRunResult:
    output = assemble_output(run) if run.ok else None
    return SignalRunResult(execution_id=run.execution_id, output=output, error=run.error, telemetry=run.telemetry)
