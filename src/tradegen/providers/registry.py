"""Name-keyed registry of AI provider adapters."""

from __future__ import annotations

from dataclasses import dataclass, field

from tradegen.core.config import Settings
from tradegen.core.errors import ConfigurationError
from tradegen.providers.anthropic import AnthropicAdapter
from tradegen.providers.base import ProviderAdapter
from tradegen.providers.google import GoogleAdapter
from tradegen.providers.openai import OpenAIAdapter, OpenRouterAdapter, XAIAdapter


@dataclass(slots=True)
class ProviderRegistry:
    """Adapters keyed by lowercase provider name, in registration order."""

    _adapters: dict[str, ProviderAdapter] = field(default_factory=dict)

    def register(self, adapter: ProviderAdapter) -> None:
        key = adapter.name.strip().lower()
        if not key:
            raise ValueError("provider adapter must declare a name")
        self._adapters[key] = adapter

    def get(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name.strip().lower())
        if adapter is None:
            available = ", ".join(self.names()) or "<none>"
            raise ConfigurationError(f"Unknown AI provider '{name}' (available: {available})")
        return adapter

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._adapters

    def names(self) -> list[str]:
        return list(self._adapters)

    def info(self) -> list[dict[str, str]]:
        return [adapter.info() for adapter in self._adapters.values()]


def default_registry(settings: Settings | None = None) -> ProviderRegistry:
    settings = settings or Settings()
    registry = ProviderRegistry()
    registry.register(AnthropicAdapter(timeout_s=settings.ai_timeout_s))
    registry.register(OpenAIAdapter(timeout_s=settings.ai_timeout_s))
    registry.register(GoogleAdapter(timeout_s=settings.ai_timeout_s))
    registry.register(XAIAdapter(timeout_s=settings.ai_timeout_s))
    registry.register(
        OpenRouterAdapter(
            timeout_s=settings.ai_timeout_s,
            referer=settings.openrouter_referer,
            title=settings.openrouter_title,
        )
    )
    return registry
