"""The seven signal-generation steps and their typed outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tradegen.ai.client import AIClient
from tradegen.context.builder import ContextBuilder
from tradegen.core.config import DEFAULT_ASSETS, Settings, resolve_api_key
from tradegen.core.models import GlassBoxData, InvalidTrade, NormalizedTrade, TradeValidationOutcome, ValidationWarning
from tradegen.core.types import AIResponse, PriceSnapshot, PromptBundle, TradingContext
from tradegen.feed.prices import PriceFeedClient
from tradegen.glassbox.builder import EnrichmentContext, GlassBoxEnricher
from tradegen.parsing.response import ParseContext, ParseResult, ResponseParser
from tradegen.pipeline.orchestrator import RunContext, StepName, StepSpec
from tradegen.prompt.composer import PromptComposer
from tradegen.validation.checks import TradeValidator, ValidationContext


@dataclass(slots=True)
class ValidationReport:
    checked: list[tuple[NormalizedTrade, TradeValidationOutcome]] = field(default_factory=list)
    invalid: list[InvalidTrade] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)

    @property
    def valid(self) -> list[tuple[NormalizedTrade, TradeValidationOutcome]]:
        return [(trade, outcome) for trade, outcome in self.checked if outcome.valid]


@dataclass(slots=True)
class PipelineComponents:
    price_feed: PriceFeedClient
    context_builder: ContextBuilder
    composer: PromptComposer
    ai_client: AIClient
    parser: ResponseParser
    validator: TradeValidator
    enricher: GlassBoxEnricher


def build_steps(components: PipelineComponents, settings: Settings) -> list[StepSpec]:
    """Declare the default step graph with timeouts and retries from ``settings``."""

    async def fetch_prices(ctx: RunContext) -> PriceSnapshot:
        assets = ctx.input.config.assets or list(DEFAULT_ASSETS)
        snapshot = await components.price_feed.fetch(assets)
        if snapshot.metadata.missing_assets:
            ctx.telemetry.warn(
                StepName.FETCH_PRICES, "assets_missing", missing_assets=snapshot.metadata.missing_assets
            )
        if snapshot.metadata.stats_failures:
            ctx.telemetry.warn(
                StepName.FETCH_PRICES, "stats_unavailable", failures=snapshot.metadata.stats_failures
            )
        return snapshot

    async def build_context(ctx: RunContext) -> TradingContext:
        snapshot: PriceSnapshot = ctx.result(StepName.FETCH_PRICES)
        return components.context_builder.build(snapshot.prices, ctx.input.config)

    async def compose_prompt(ctx: RunContext) -> PromptBundle:
        trading_context: TradingContext = ctx.result(StepName.BUILD_CONTEXT)
        bundle = components.composer.compose(trading_context, ctx.input.strategy)
        ctx.telemetry.debug(
            StepName.COMPOSE_PROMPT,
            "prompt_composed",
            prompt_length=bundle.metadata["prompt_length"],
            estimated_tokens=bundle.metadata["estimated_tokens"],
        )
        return bundle

    async def call_ai(ctx: RunContext) -> AIResponse:
        config = ctx.input.config
        bundle: PromptBundle = ctx.result(StepName.COMPOSE_PROMPT)
        response = await components.ai_client.call(
            bundle,
            config.ai_provider,
            resolve_api_key(config, config.ai_provider),
            model=config.ai_model,
        )
        ctx.telemetry.metadata["ai"] = {
            "provider": response.provider,
            "model": response.model,
            "latency_ms": response.latency_ms,
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        }
        return response

    async def parse_response(ctx: RunContext) -> ParseResult:
        snapshot: PriceSnapshot = ctx.result(StepName.FETCH_PRICES)
        trading_context: TradingContext = ctx.result(StepName.BUILD_CONTEXT)
        response: AIResponse = ctx.result(StepName.CALL_AI)
        strategy = ctx.input.strategy
        parse_context = ParseContext(
            execution_id=ctx.execution_id,
            created_at=ctx.started_at,
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            leverage=ctx.input.config.leverage,
            capital_per_trade=trading_context.position_sizing.capital_per_trade,
            prices=snapshot.prices,
            min_criteria=trading_context.thresholds.min_criteria,
        )
        result = components.parser.parse(response.content, parse_context)
        for issue in result.parse_errors:
            ctx.telemetry.warn(StepName.PARSE_RESPONSE, "trade_parse_error", index=issue.index, errors=issue.errors)
        return result

    async def validate_trades(ctx: RunContext) -> ValidationReport:
        snapshot: PriceSnapshot = ctx.result(StepName.FETCH_PRICES)
        trading_context: TradingContext = ctx.result(StepName.BUILD_CONTEXT)
        parsed: ParseResult = ctx.result(StepName.PARSE_RESPONSE)
        validation_context = ValidationContext(
            thresholds=trading_context.thresholds,
            execution_params=trading_context.execution_params,
            leverage=ctx.input.config.leverage,
            prices=snapshot.prices,
        )

        report = ValidationReport(warnings=list(parsed.validation_warnings))
        for index, trade in enumerate(parsed.trades):
            outcome = components.validator.validate(trade, validation_context)
            trade.validation = outcome
            report.checked.append((trade, outcome))
            report.warnings.extend(
                ValidationWarning(
                    source="validator",
                    message=result.message,
                    index=index,
                    trade_id=trade.id,
                    check=result.name,
                )
                for result in outcome.failed_warnings
            )
            if not outcome.valid:
                failed = [result for result in outcome.failed if result.severity == "error"]
                report.invalid.append(InvalidTrade(trade=trade, failed_validations=failed))
                ctx.telemetry.info(
                    StepName.VALIDATE_TRADES,
                    "trade_rejected",
                    trade_id=trade.id,
                    asset=trade.asset,
                    failed=[result.name for result in failed],
                )
        return report

    async def enrich_glass_box(ctx: RunContext) -> GlassBoxData:
        snapshot: PriceSnapshot = ctx.result(StepName.FETCH_PRICES)
        trading_context: TradingContext = ctx.result(StepName.BUILD_CONTEXT)
        parsed: ParseResult = ctx.result(StepName.PARSE_RESPONSE)
        report: ValidationReport = ctx.result(StepName.VALIDATE_TRADES)
        enrichment_context = EnrichmentContext(
            execution_id=ctx.execution_id,
            generated_at=ctx.started_at,
            prompt=ctx.result(StepName.COMPOSE_PROMPT),
            ai_response=ctx.result(StepName.CALL_AI),
            thresholds=trading_context.thresholds,
            market_analysis=trading_context.market_analysis,
            prices=snapshot.prices,
            pipeline_steps=tuple(ctx.steps),
        )
        data = components.enricher.build(report.valid, report.checked, len(parsed.parse_errors), enrichment_context)
        for trade, _ in report.valid:
            trade.glass_box = data.trades[trade.id]
        return data

    transform = settings.transform_timeout_s
    return [
        StepSpec(
            name=StepName.FETCH_PRICES,
            run=fetch_prices,
            timeout_s=settings.price_timeout_s,
            retries=settings.price_retries,
            summarize=_summarize_prices,
            description="Fetch current prices and 24h statistics",
        ),
        StepSpec(
            name=StepName.BUILD_CONTEXT,
            run=build_context,
            requires=(StepName.FETCH_PRICES,),
            timeout_s=transform,
            summarize=lambda ctx: {"assets": len(ctx.prices_summary), "minRiskReward": ctx.thresholds.min_risk_reward},
            description="Analyze market and size positions",
        ),
        StepSpec(
            name=StepName.COMPOSE_PROMPT,
            run=compose_prompt,
            requires=(StepName.BUILD_CONTEXT,),
            timeout_s=transform,
            summarize=lambda bundle: {"promptLength": bundle.metadata["prompt_length"]},
            description="Compose the AI prompt",
        ),
        StepSpec(
            name=StepName.CALL_AI,
            run=call_ai,
            requires=(StepName.COMPOSE_PROMPT,),
            timeout_s=settings.ai_timeout_s,
            retries=settings.ai_retries,
            summarize=_summarize_ai,
            description="Call the configured AI provider",
        ),
        StepSpec(
            name=StepName.PARSE_RESPONSE,
            run=parse_response,
            requires=(StepName.CALL_AI, StepName.BUILD_CONTEXT),
            timeout_s=transform,
            summarize=lambda parsed: {"trades": len(parsed.trades), "parseErrors": len(parsed.parse_errors)},
            description="Extract and normalize trades",
        ),
        StepSpec(
            name=StepName.VALIDATE_TRADES,
            run=validate_trades,
            requires=(StepName.PARSE_RESPONSE,),
            timeout_s=transform,
            summarize=lambda report: {"valid": len(report.valid), "invalid": len(report.invalid)},
            description="Run the validator chain",
        ),
        StepSpec(
            name=StepName.ENRICH_GLASS_BOX,
            run=enrich_glass_box,
            requires=(StepName.VALIDATE_TRADES,),
            timeout_s=transform,
            summarize=lambda data: {"records": len(data.trades)},
            description="Build Glass Box audit records",
        ),
    ]


def _summarize_prices(snapshot: PriceSnapshot) -> dict[str, Any]:
    metadata = snapshot.metadata
    return {
        "assetsRequested": metadata.assets_requested,
        "assetsReceived": metadata.assets_received,
        "missingAssets": list(metadata.missing_assets),
        "statsFetched": len(metadata.stats_fetched),
    }


def _summarize_ai(response: AIResponse) -> dict[str, Any]:
    return {
        "provider": response.provider,
        "model": response.model,
        "latencyMs": response.latency_ms,
        "inputTokens": response.usage.input_tokens,
        "outputTokens": response.usage.output_tokens,
    }
