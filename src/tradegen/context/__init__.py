"""Market analysis and position sizing."""

from tradegen.context.builder import ContextBuilder

__all__ = ["ContextBuilder"]
