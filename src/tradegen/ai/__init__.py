"""Provider-agnostic AI client."""

from tradegen.ai.client import AIClient

__all__ = ["AIClient"]
