"""AI provider adapters."""

from tradegen.providers.anthropic import AnthropicAdapter
from tradegen.providers.base import ProviderAdapter, classify_status_error
from tradegen.providers.google import GoogleAdapter
from tradegen.providers.openai import ChatCompletionsAdapter, OpenAIAdapter, OpenRouterAdapter, XAIAdapter
from tradegen.providers.registry import ProviderRegistry, default_registry

__all__ = [
    "AnthropicAdapter",
    "ChatCompletionsAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "XAIAdapter",
    "classify_status_error",
    "default_registry",
]
