"""Minimal FastAPI interface for trade signal generation."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException

from tradegen.core.config import Settings
from tradegen.core.errors import ConfigurationError
from tradegen.core.models import PipelineInput
from tradegen.pipeline.service import SignalPipeline

logger = logging.getLogger(__name__)

app = FastAPI(title="tradegen API", version="0.1.0")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def get_pipeline() -> SignalPipeline:
    return SignalPipeline(get_settings())


@app.get("/health")
def health() -> dict[str, str]:
    settings = get_settings()
    return {"status": "ok", "app": settings.app_name, "environment": settings.environment}


@app.get("/providers")
def list_providers(pipeline: SignalPipeline = Depends(get_pipeline)) -> dict[str, object]:
    return {"providers": pipeline.components.ai_client.registry.info()}


@app.post("/signals")
async def generate_signals(
    pipeline_input: PipelineInput,
    pipeline: SignalPipeline = Depends(get_pipeline),
) -> dict[str, object]:
    """Run the pipeline once. Fatal step failures map to 400 (config) or 502."""
    result = await pipeline.generate(pipeline_input)
    if result.error is not None:
        status_code = 400 if isinstance(result.error.cause, ConfigurationError) else 502
        logger.warning(
            "signals_failed execution_id=%s step=%s status=%s",
            result.execution_id,
            result.error.step,
            status_code,
        )
        raise HTTPException(status_code=status_code, detail=result.error.to_dict())

    return result.output.to_payload() if result.output is not None else {}
