"""Prompt composition."""

from tradegen.prompt.composer import PromptComposer

__all__ = ["PromptComposer"]
