"""Provider-agnostic AI call surface."""

from __future__ import annotations

import logging
import time

from tradegen.core.errors import ConfigurationError
from tradegen.core.types import AIResponse, GenerationOptions, PromptBundle
from tradegen.providers.registry import ProviderRegistry, default_registry

logger = logging.getLogger(__name__)


class AIClient:
    """Dispatches a composed prompt to the named provider adapter."""

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        *,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> None:
        self._registry = registry or default_registry()
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def call(
        self,
        prompt: PromptBundle,
        provider: str,
        api_key: str,
        *,
        model: str | None = None,
    ) -> AIResponse:
        """Send ``prompt`` to ``provider`` and return text plus usage and latency.

        Raises ``ConfigurationError`` for an unknown provider or empty key
        before any network call is made. Provider errors propagate unchanged.
        """

        adapter = self._registry.get(provider)
        if not api_key or not api_key.strip():
            raise ConfigurationError(f"No API key configured for provider '{adapter.name}'")

        options = GenerationOptions(max_tokens=self._max_tokens, temperature=self._temperature, model=model)
        started = time.perf_counter()
        result = await adapter.generate(prompt, api_key.strip(), options)
        latency_ms = round((time.perf_counter() - started) * 1000, 3)

        logger.info(
            "ai_call_complete provider=%s model=%s latency_ms=%.1f input_tokens=%s output_tokens=%s",
            adapter.name,
            result.model,
            latency_ms,
            result.usage.input_tokens,
            result.usage.output_tokens,
        )
        return AIResponse(
            content=result.content,
            usage=result.usage,
            raw=result.raw,
            provider=adapter.name,
            model=result.model,
            latency_ms=latency_ms,
            finish_reason=result.finish_reason,
        )
