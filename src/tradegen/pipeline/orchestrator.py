"""Dependency-ordered step runner with per-step timeout, retry, and optional flag."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import uuid
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from tradegen.core.errors import (
    PipelineStepError,
    ProviderRateLimitError,
    StepTimeoutError,
    is_retryable,
)
from tradegen.core.models import PipelineInput, StepRecord
from tradegen.core.telemetry import PipelineTelemetry, RingBuffer

StepFn = Callable[["RunContext"], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


class StepName(StrEnum):
    FETCH_PRICES = "fetch_prices"
    BUILD_CONTEXT = "build_context"
    COMPOSE_PROMPT = "compose_prompt"
    CALL_AI = "call_ai"
    PARSE_RESPONSE = "parse_response"
    VALIDATE_TRADES = "validate_trades"
    ENRICH_GLASS_BOX = "enrich_glass_box"


@dataclass(frozen=True, slots=True)
class StepSpec:
    """Static declaration of one pipeline step."""

    name: str
    run: StepFn
    requires: tuple[str, ...] = ()
    timeout_s: float = 5.0
    retries: int = 0
    optional: bool = False
    default: Callable[[], Any] | None = None
    summarize: Callable[[Any], dict[str, Any]] | None = None
    description: str = ""


@dataclass(slots=True)
class RunContext:
    """State owned by a single run: input, typed results by step, and step records."""

    execution_id: str
    started_at: datetime
    input: PipelineInput
    telemetry: PipelineTelemetry
    results: dict[str, Any] = field(default_factory=dict)
    steps: list[StepRecord] = field(default_factory=list)

    def result(self, name: str) -> Any:
        """Return the output of a completed step.

        A failed optional step leaves its declared default (or ``None``) here.
        """
        if name not in self.results:
            raise KeyError(f"step '{name}' has not produced a result")
        return self.results[name]


@dataclass(slots=True)
class PipelineRun:
    execution_id: str
    context: RunContext
    error: PipelineStepError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def telemetry(self) -> PipelineTelemetry:
        return self.context.telemetry

    @property
    def steps(self) -> list[StepRecord]:
        return self.context.steps


class Orchestrator:
    """Runs declared steps sequentially in dependency order."""

    def __init__(
        self,
        steps: Sequence[StepSpec],
        *,
        logger: logging.Logger | None = None,
        backoff_s: float = 1.0,
        max_retry_delay_s: float = 30.0,
        telemetry_buffer_size: int = 500,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._steps = order_steps(steps)
        self._logger = logger or logging.getLogger(__name__)
        self._backoff_s = backoff_s
        self._max_retry_delay_s = max_retry_delay_s
        self._telemetry_buffer_size = telemetry_buffer_size
        self._sleep = sleep

    @property
    def step_names(self) -> list[str]:
        return [str(spec.name) for spec in self._steps]

    async def run(self, pipeline_input: PipelineInput, *, execution_id: str | None = None) -> PipelineRun:
        execution_id = execution_id or new_execution_id()
        telemetry = PipelineTelemetry(
            execution_id,
            logger=self._logger,
            buffer=RingBuffer(self._telemetry_buffer_size),
        )
        context = RunContext(
            execution_id=execution_id,
            started_at=datetime.now(UTC),
            input=pipeline_input,
            telemetry=telemetry,
        )
        telemetry.info("pipeline", "pipeline_start", steps=self.step_names)

        for spec in self._steps:
            error = await self._run_step(spec, context)
            if error is not None:
                telemetry.error("pipeline", "pipeline_failed", failure=error.to_dict())
                return PipelineRun(execution_id=execution_id, context=context, error=error)

        telemetry.info("pipeline", "pipeline_complete", steps_completed=len(context.steps))
        return PipelineRun(execution_id=execution_id, context=context)

    def run_sync(self, pipeline_input: PipelineInput, *, execution_id: str | None = None) -> PipelineRun:
        """Sync bridge for callers without an event loop (CLI, scripts)."""
        return _run_coro_sync(self.run(pipeline_input, execution_id=execution_id))

    async def _run_step(self, spec: StepSpec, context: RunContext) -> PipelineStepError | None:
        telemetry = context.telemetry
        telemetry.start_step(spec.name)
        attempts = 0
        while True:
            attempts += 1
            try:
                output = await asyncio.wait_for(spec.run(context), timeout=spec.timeout_s)
            except TimeoutError:
                error: BaseException = StepTimeoutError(spec.name, spec.timeout_s)
            except Exception as exc:
                error = exc
            else:
                context.results[spec.name] = output
                duration_ms = telemetry.end_step(spec.name, "success")
                context.steps.append(
                    StepRecord(
                        name=str(spec.name),
                        status="success",
                        optional=spec.optional,
                        attempts=attempts,
                        duration_ms=duration_ms,
                        output_summary=spec.summarize(output) if spec.summarize else {},
                    )
                )
                return None

            if attempts <= spec.retries and is_retryable(error):
                delay = self._retry_delay(attempts, error)
                telemetry.warn(
                    spec.name,
                    "step_retry",
                    attempt=attempts,
                    max_attempts=spec.retries + 1,
                    delay_s=delay,
                    error_type=type(error).__name__,
                    error=str(error),
                )
                await self._sleep(delay)
                continue
            break

        duration_ms = telemetry.end_step(spec.name, "failed")
        context.steps.append(
            StepRecord(
                name=str(spec.name),
                status="failed",
                optional=spec.optional,
                attempts=attempts,
                duration_ms=duration_ms,
                error=f"{type(error).__name__}: {error}",
            )
        )

        if spec.optional:
            context.results[spec.name] = spec.default() if spec.default else None
            telemetry.warn(spec.name, "optional_step_failed", error_type=type(error).__name__, error=str(error))
            return None

        telemetry.error(spec.name, "step_failed", attempts=attempts, error_type=type(error).__name__, error=str(error))
        return PipelineStepError(str(spec.name), attempts, error)

    def _retry_delay(self, attempt: int, error: BaseException) -> float:
        """Exponential backoff, stretched by a provider Retry-After, never above the cap."""
        delay = self._backoff_s * 2 ** (attempt - 1)
        if isinstance(error, ProviderRateLimitError) and error.retry_after is not None:
            delay = max(delay, error.retry_after)
        return min(delay, self._max_retry_delay_s)


def order_steps(steps: Sequence[StepSpec]) -> list[StepSpec]:
    """Validate the step graph and return a topological order.

    Ties are broken by declaration order. Raises ``ValueError`` on duplicate
    names, unknown prerequisites, or cycles.
    """

    by_name: dict[str, StepSpec] = {}
    for spec in steps:
        if spec.name in by_name:
            raise ValueError(f"Duplicate step name: {spec.name}")
        by_name[spec.name] = spec
    for spec in steps:
        for required in spec.requires:
            if required not in by_name:
                raise ValueError(f"Step '{spec.name}' requires unknown step '{required}'")

    ordered: list[StepSpec] = []
    done: set[str] = set()
    pending = list(steps)
    while pending:
        ready = next((spec for spec in pending if all(req in done for req in spec.requires)), None)
        if ready is None:
            cycle = ", ".join(spec.name for spec in pending)
            raise ValueError(f"Step dependency cycle among: {cycle}")
        ordered.append(ready)
        done.add(ready.name)
        pending.remove(ready)
    return ordered


def new_execution_id() -> str:
    return f"exec_{uuid.uuid4().hex[:16]}"


def _run_coro_sync(coro: Coroutine[Any, Any, PipelineRun]) -> PipelineRun:
    """Execute coroutine safely from synchronous code."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()
