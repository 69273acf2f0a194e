from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from tradegen.core.config import EXECUTION_PARAMS, Settings, execution_params_for, resolve_api_key
from tradegen.core.models import PipelineConfig, PipelineInput
from tradegen.core.telemetry import PipelineTelemetry, RingBuffer


def test_api_key_prefers_run_config_over_environment(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
    config = PipelineConfig(api_keys={"anthropic": "config-key"})

    assert resolve_api_key(config, "anthropic") == "config-key"


def test_api_key_falls_back_to_environment(monkeypatch) -> None:
    monkeypatch.setenv("XAI_API_KEY", " env-key ")
    config = PipelineConfig(api_keys={"xai": "  "})

    assert resolve_api_key(config, "xai") == "env-key"


def test_api_key_empty_when_unset(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert resolve_api_key(PipelineConfig(), "google") == ""


def test_api_keys_hidden_from_repr() -> None:
    assert "secret" not in repr(PipelineConfig(api_keys={"openai": "secret"}))


def test_pipeline_input_accepts_camel_case() -> None:
    parsed = PipelineInput.model_validate(
        {
            "strategy": {"id": "s1", "name": "Momentum", "content": "Buy strength"},
            "config": {"numResults": 2, "executionTime": "scalping", "minIpe": 80, "aiProvider": "openai"},
        }
    )

    assert parsed.config.num_results == 2
    assert parsed.config.execution_time == "scalping"
    assert parsed.config.ai_provider == "openai"
    assert parsed.config.capital == 1000


def test_pipeline_config_bounds() -> None:
    with pytest.raises(ValidationError):
        PipelineConfig(leverage=200)
    with pytest.raises(ValidationError):
        PipelineConfig(num_results=0)
    with pytest.raises(ValidationError):
        PipelineConfig(execution_time="weekly")


def test_execution_params_table_and_target_pct() -> None:
    params = execution_params_for(PipelineConfig(execution_time="scalping", target_pct=3))

    assert params.min_risk_reward == 1.5
    assert params.suggested_leverage == "10-50x"
    assert params.target_percent == 3
    assert EXECUTION_PARAMS["target"].max_duration_hours is None


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("TRADEGEN_AI_RETRIES", "3")
    monkeypatch.setenv("TRADEGEN_PRICE_TIMEOUT_S", "9.5")

    settings = Settings()

    assert settings.ai_retries == 3
    assert settings.price_timeout_s == 9.5
    assert settings.transform_timeout_s == 5.0


def test_telemetry_redacts_credentials_and_mirrors_to_logging(caplog) -> None:
    telemetry = PipelineTelemetry("exec_t", logger=logging.getLogger("tradegen.test"))

    with caplog.at_level(logging.INFO, logger="tradegen.test"):
        entry = telemetry.info("call_ai", "request", api_key="sk-secret", provider="openai")

    assert entry["data"] == {"api_key": "[REDACTED]", "provider": "openai"}
    assert "sk-secret" not in caplog.text
    assert "execution_id=exec_t step=call_ai" in caplog.text


def test_telemetry_step_timings_and_summary() -> None:
    telemetry = PipelineTelemetry("exec_t")
    telemetry.start_step("fetch_prices")
    duration = telemetry.end_step("fetch_prices", "success")
    telemetry.warn("fetch_prices", "assets_missing", missing_assets=["X/USDT"])

    summary = telemetry.summary()

    assert duration >= 0
    assert summary["steps_executed"] == ["fetch_prices"]
    assert summary["warning_count"] == 1
    assert summary["error_count"] == 0
    assert not telemetry.has_errors()


def test_ring_buffer_is_bounded() -> None:
    buffer = RingBuffer(max_size=2)
    for index in range(3):
        buffer.append({"index": index})

    assert [item["index"] for item in buffer.items()] == [1, 2]
    assert len(buffer) == 2
