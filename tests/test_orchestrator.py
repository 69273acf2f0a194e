from __future__ import annotations

import asyncio

import pytest

from tradegen.core.errors import (
    PriceFeedError,
    ProviderRateLimitError,
    ResponseParseError,
    StepTimeoutError,
)
from tradegen.core.models import PipelineInput, StrategySpec
from tradegen.pipeline.orchestrator import Orchestrator, RunContext, StepSpec, order_steps

INPUT = PipelineInput(strategy=StrategySpec(name="test"))


def _recording_sleep():  # type: ignore[no-untyped-def]
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    return sleep, delays


def _returning(value: object):  # type: ignore[no-untyped-def]
    async def run(ctx: RunContext) -> object:
        del ctx
        return value

    return run


def test_steps_run_in_dependency_order() -> None:
    seen: list[str] = []

    def step(name: str):  # type: ignore[no-untyped-def]
        async def run(ctx: RunContext) -> str:
            seen.append(name)
            return name

        return run

    orchestrator = Orchestrator(
        [
            StepSpec(name="c", run=step("c"), requires=("b",)),
            StepSpec(name="a", run=step("a")),
            StepSpec(name="b", run=step("b"), requires=("a",)),
            StepSpec(name="d", run=step("d")),
        ]
    )

    run = asyncio.run(orchestrator.run(INPUT, execution_id="exec_order"))

    assert run.ok
    assert orchestrator.step_names == ["a", "b", "c", "d"]
    assert seen == ["a", "b", "c", "d"]
    assert run.context.result("c") == "c"
    assert [record.status for record in run.steps] == ["success"] * 4


def test_downstream_step_reads_upstream_result() -> None:
    async def double(ctx: RunContext) -> int:
        return ctx.result("base") * 2

    run = asyncio.run(
        Orchestrator(
            [StepSpec(name="base", run=_returning(21)), StepSpec(name="double", run=double, requires=("base",))]
        ).run(INPUT)
    )

    assert run.context.result("double") == 42


def test_retryable_error_is_retried_with_exponential_backoff() -> None:
    calls = {"count": 0}

    async def flaky(ctx: RunContext) -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise PriceFeedError("exchange down")
        return "prices"

    sleep, delays = _recording_sleep()
    orchestrator = Orchestrator([StepSpec(name="fetch", run=flaky, retries=2)], backoff_s=1.0, sleep=sleep)

    run = asyncio.run(orchestrator.run(INPUT))

    assert run.ok
    assert calls["count"] == 3
    assert delays == [1.0, 2.0]
    assert run.steps[0].attempts == 3


def test_retries_exhausted_surfaces_structured_error() -> None:
    async def down(ctx: RunContext) -> None:
        raise PriceFeedError("exchange down")

    sleep, delays = _recording_sleep()
    run = asyncio.run(
        Orchestrator([StepSpec(name="fetch", run=down, retries=2)], backoff_s=0.5, sleep=sleep).run(INPUT)
    )

    assert not run.ok
    assert run.error.step == "fetch"
    assert run.error.attempts == 3
    assert run.error.to_dict()["retriesAttempted"] == 2
    assert isinstance(run.error.cause, PriceFeedError)
    assert delays == [0.5, 1.0]


def test_non_retryable_error_is_not_retried_and_aborts_run() -> None:
    calls = {"parse": 0, "after": 0}

    async def parse(ctx: RunContext) -> None:
        calls["parse"] += 1
        raise ResponseParseError("no json")

    async def after(ctx: RunContext) -> None:
        calls["after"] += 1

    run = asyncio.run(
        Orchestrator(
            [
                StepSpec(name="first", run=_returning(1)),
                StepSpec(name="parse", run=parse, requires=("first",), retries=3),
                StepSpec(name="after", run=after, requires=("parse",)),
            ]
        ).run(INPUT)
    )

    assert calls == {"parse": 1, "after": 0}
    details = run.error.to_dict()
    assert details["step"] == "parse"
    assert details["retriesAttempted"] == 0
    assert details["errorType"] == "ResponseParseError"
    assert details["retryable"] is False
    assert [record.name for record in run.steps] == ["first", "parse"]
    assert run.telemetry.events(step="first")
    assert run.telemetry.has_errors()


def test_unknown_exception_is_root_cause_and_not_retried() -> None:
    calls = {"count": 0}

    async def broken(ctx: RunContext) -> None:
        calls["count"] += 1
        raise KeyError("missing")

    run = asyncio.run(Orchestrator([StepSpec(name="broken", run=broken, retries=2)]).run(INPUT))

    assert calls["count"] == 1
    assert isinstance(run.error.cause, KeyError)


def test_timeout_abandons_call_and_is_retried() -> None:
    started = {"count": 0}
    finished = {"count": 0}

    async def slow(ctx: RunContext) -> None:
        started["count"] += 1
        await asyncio.sleep(5)
        finished["count"] += 1

    sleep, delays = _recording_sleep()
    run = asyncio.run(
        Orchestrator([StepSpec(name="ai", run=slow, timeout_s=0.01, retries=1)], sleep=sleep).run(INPUT)
    )

    assert started["count"] == 2
    assert finished["count"] == 0
    assert isinstance(run.error.cause, StepTimeoutError)
    assert run.error.attempts == 2
    assert len(delays) == 1


def test_rate_limit_retry_after_extends_backoff() -> None:
    calls = {"count": 0}

    async def throttled(ctx: RunContext) -> str:
        calls["count"] += 1
        if calls["count"] == 1:
            raise ProviderRateLimitError("429", retry_after=5.0, provider="openai")
        return "ok"

    sleep, delays = _recording_sleep()
    run = asyncio.run(
        Orchestrator([StepSpec(name="ai", run=throttled, retries=1)], backoff_s=1.0, sleep=sleep).run(INPUT)
    )

    assert run.ok
    assert delays == [5.0]


def test_optional_step_failure_does_not_abort_and_yields_default() -> None:
    async def enrich(ctx: RunContext) -> None:
        raise RuntimeError("enrichment offline")

    async def consume(ctx: RunContext) -> int:
        return len(ctx.result("enrich"))

    run = asyncio.run(
        Orchestrator(
            [
                StepSpec(name="enrich", run=enrich, optional=True, default=list),
                StepSpec(name="consume", run=consume, requires=("enrich",)),
            ]
        ).run(INPUT)
    )

    assert run.ok
    assert run.context.result("enrich") == []
    assert run.context.result("consume") == 0
    failed = run.steps[0]
    assert failed.status == "failed"
    assert failed.optional is True
    assert "enrichment offline" in failed.error


def test_graph_validation_rejects_bad_declarations() -> None:
    step = _returning(None)

    with pytest.raises(ValueError, match="Duplicate"):
        order_steps([StepSpec(name="a", run=step), StepSpec(name="a", run=step)])
    with pytest.raises(ValueError, match="unknown step 'ghost'"):
        order_steps([StepSpec(name="a", run=step, requires=("ghost",))])
    with pytest.raises(ValueError, match="cycle"):
        order_steps(
            [StepSpec(name="a", run=step, requires=("b",)), StepSpec(name="b", run=step, requires=("a",))]
        )


def test_run_sync_works_inside_running_loop() -> None:
    orchestrator = Orchestrator([StepSpec(name="only", run=_returning("done"))])

    async def caller() -> str:
        return orchestrator.run_sync(INPUT).context.result("only")

    assert orchestrator.run_sync(INPUT).ok
    assert asyncio.run(caller()) == "done"


def test_retry_after_is_capped_by_max_retry_delay() -> None:
    calls = {"count": 0}

    async def throttled(ctx: RunContext) -> str:
        calls["count"] += 1
        if calls["count"] == 1:
            raise ProviderRateLimitError("429", retry_after=3600.0, provider="anthropic")
        return "ok"

    sleep, delays = _recording_sleep()
    orchestrator = Orchestrator(
        [StepSpec(name="ai", run=throttled, retries=1)], backoff_s=1.0, max_retry_delay_s=10.0, sleep=sleep
    )

    run = asyncio.run(orchestrator.run(INPUT))

    assert run.ok
    assert delays == [10.0]
