from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from pydantic import ValidationError

from tradegen.core.config import Settings
from tradegen.core.errors import ConfigurationError
from tradegen.core.models import NormalizedTrade, PipelineConfig, PipelineInput, StrategySpec
from tradegen.core.types import CheckOutcome
from tradegen.pipeline.orchestrator import StepName
from tradegen.pipeline.service import SignalPipeline
from tradegen.validation.checks import ValidationContext, create_default_validator

VALID_LONG = {
    "asset": "BTC/USDT",
    "strategy": "LONG",
    "entry": 95000,
    "takeProfit": 105000,
    "stopLoss": 90000,
    "ipe": 85,
    "summary": "Trend continuation",
    "reasoning": {"whyAsset": "Leader", "whyDirection": "Uptrend"},
    "criteriaMatched": [{"criterion": "Trend", "value": "up", "threshold": "up", "passed": True}],
    "confidenceFactors": [
        {"factor": "Technical", "weight": 70, "score": 90, "contribution": 63},
        {"factor": "Risk", "weight": 30, "score": 80, "contribution": 24},
    ],
}
TIGHT_LONG = dict(VALID_LONG, takeProfit=100000, stopLoss=92000)
MALFORMED = {"asset": "ETH/USDT", "strategy": "SHORT"}


def _install_fakes(monkeypatch, ai_text: str) -> dict[str, int]:  # type: ignore[no-untyped-def]
    calls = {"get": 0, "post": 0}

    async def fake_get(self, url, *, params=None):  # type: ignore[no-untyped-def]
        del self
        calls["get"] += 1
        request = httpx.Request("GET", url)
        if params is None:
            return httpx.Response(
                status_code=200,
                request=request,
                json=[{"symbol": "BTCUSDT", "price": "95000"}, {"symbol": "ETHUSDT", "price": "3000"}],
            )
        return httpx.Response(
            status_code=200,
            request=request,
            json={
                "priceChange": "900",
                "priceChangePercent": "1.0",
                "highPrice": "96000",
                "lowPrice": "94000",
                "volume": "1000",
                "quoteVolume": "2000000000",
            },
        )

    async def fake_post(self, url, *, headers, json):  # type: ignore[no-untyped-def]
        del self, headers, json
        calls["post"] += 1
        return httpx.Response(
            status_code=200,
            request=httpx.Request("POST", url),
            json={
                "model": "claude-sonnet-4-20250514",
                "content": [{"type": "text", "text": ai_text}],
                "usage": {"input_tokens": 900, "output_tokens": 300},
            },
        )

    monkeypatch.setattr("httpx.AsyncClient.get", fake_get)
    monkeypatch.setattr("httpx.AsyncClient.post", fake_post)
    return calls


def _input(**config: object) -> PipelineInput:
    base = {
        "capital": 1000,
        "leverage": 5,
        "num_results": 2,
        "execution_time": "target",
        "min_ipe": 70,
        "assets": ["BTC/USDT", "ETH/USDT"],
        "api_keys": {"anthropic": "sk-test"},
    }
    base.update(config)
    return PipelineInput(
        strategy=StrategySpec(id="s1", name="Trend", content="Follow the trend."),
        config=PipelineConfig(**base),
    )


def test_end_to_end_run_splits_valid_invalid_and_malformed(monkeypatch) -> None:
    ai_text = "Analysis done.\n```json\n" + json.dumps([VALID_LONG, TIGHT_LONG, MALFORMED]) + "\n```"
    calls = _install_fakes(monkeypatch, ai_text)

    result = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input(leverage=15)))

    assert result.ok
    assert calls["post"] == 1
    output = result.output
    assert len(output.trades) == 1
    assert len(output.invalid_trades) == 1
    assert [issue.index for issue in output.parse_errors] == [2]

    accepted = output.trades[0]
    assert accepted.status == "pending"
    assert accepted.risk_reward_ratio >= 2.0
    assert accepted.take_profit > accepted.entry > accepted.stop_loss
    assert accepted.glass_box is not None

    rejected = output.invalid_trades[0]
    assert [failure.name for failure in rejected.failed_validations] == ["risk_reward"]

    assert [record.name for record in output.per_step_metadata] == [str(name) for name in StepName]
    assert {warning.source for warning in output.validation_warnings} == {"parser", "validator"}


def test_glass_box_records_explain_accepted_trade(monkeypatch) -> None:
    _install_fakes(monkeypatch, json.dumps([VALID_LONG]))

    output = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input(num_results=1))).output

    trade = output.trades[0]
    record = output.glass_box_data.trades[trade.id]
    assert record.reasoning.why_asset == "Leader"
    assert record.reasoning.why_entry.startswith("Entry at $95,000.00")
    assert record.confidence.total_weight == 100
    assert record.confidence.total_score == 87
    assert record.market_context.change_pct_24h == 1.0
    assert record.risk_analysis.position_size == 5000
    assert record.risk_analysis.max_loss == 263.16
    assert record.risk_analysis.assessment.level == "high"
    assert record.audit.provider == "anthropic"
    assert record.audit.token_usage.input_tokens == 900
    assert "Follow the trend." in record.audit.user_prompt
    assert record.audit.raw_candidate["asset"] == "BTC/USDT"

    summary = output.glass_box_data.summary
    assert summary.total_generated == 1
    assert summary.total_valid == 1
    assert summary.total_invalid == 0
    assert summary.ai_model == "claude-sonnet-4-20250514"
    assert summary.validation_summary[0].valid is True


def test_payload_uses_camel_case(monkeypatch) -> None:
    _install_fakes(monkeypatch, json.dumps([VALID_LONG]))

    result = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input()))
    payload = result.to_payload()["output"]

    assert {"trades", "invalidTrades", "parseErrors", "glassBoxData", "perStepMetadata"} <= set(payload)
    trade = payload["trades"][0]
    assert trade["takeProfit"] == 105000
    assert trade["riskRewardRatio"] == 2.0
    assert trade["glassBox"]["riskAnalysis"]["assessment"]["level"] == "high"


def test_missing_api_key_fails_at_ai_step_without_network(monkeypatch) -> None:
    calls = _install_fakes(monkeypatch, "[]")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    result = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input(api_keys={})))

    assert not result.ok
    assert result.output is None
    assert result.error.step == "call_ai"
    assert isinstance(result.error.cause, ConfigurationError)
    assert result.error.attempts == 1
    assert calls["post"] == 0
    assert result.telemetry.summary()["steps_executed"][:3] == ["fetch_prices", "build_context", "compose_prompt"]


def test_unparseable_ai_text_is_fatal(monkeypatch) -> None:
    _install_fakes(monkeypatch, "I'm sorry, I can't help with that.")

    result = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input()))

    assert result.error.step == "parse_response"
    assert result.error.to_dict()["errorType"] == "ResponseParseError"


def test_empty_trade_array_is_a_successful_empty_run(monkeypatch) -> None:
    _install_fakes(monkeypatch, "[]")

    result = SignalPipeline(Settings(retry_backoff_s=0)).generate_sync(_input())

    assert result.ok
    assert result.output.trades == []
    assert result.output.glass_box_data.summary.total_generated == 0


def test_glass_box_record_is_isolated_from_later_mutation(monkeypatch) -> None:
    _install_fakes(monkeypatch, json.dumps([VALID_LONG]))

    output = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0)).generate(_input())).output
    trade = output.trades[0]
    record = output.glass_box_data.trades[trade.id]

    trade.raw["reasoning"]["whyAsset"] = "TAMPERED"
    record.audit.raw_candidate["ipe"] = 1
    output.per_step_metadata[0].output_summary["assetsReceived"] = 0

    assert record.audit.raw_candidate["reasoning"]["whyAsset"] == "Leader"
    assert record.audit.raw_candidate["ipe"] == 85
    assert record.audit.pipeline_steps[0].output_summary["assetsReceived"] == 2
    with pytest.raises(ValidationError):
        record.audit.raw_candidate_json = "{}"


class _ExplodingCheck:
    name = "exploding"
    severity = "warning"

    def check(self, trade: NormalizedTrade, context: ValidationContext) -> CheckOutcome:
        del context
        if trade.ipe == 80:
            raise RuntimeError("boom")
        return CheckOutcome(passed=True, message="ok")


def test_raising_check_does_not_stop_validation_of_other_trades(monkeypatch) -> None:
    _install_fakes(monkeypatch, json.dumps([dict(VALID_LONG, ipe=80), VALID_LONG]))
    validator = create_default_validator().add(_ExplodingCheck())

    result = asyncio.run(SignalPipeline(Settings(retry_backoff_s=0), validator=validator).generate(_input()))

    assert result.ok
    output = result.output
    assert [trade.ipe for trade in output.trades] == [85]
    assert [check.name for check in output.trades[0].validation.results] == validator.names()
    rejected = output.invalid_trades[0]
    assert rejected.trade.ipe == 80
    assert [failure.message for failure in rejected.failed_validations] == ["Validator error: boom"]
    assert output.glass_box_data.summary.total_generated == 2
