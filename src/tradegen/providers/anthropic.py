"""Anthropic Messages API adapter."""

from __future__ import annotations

from tradegen.core.errors import ProviderError
from tradegen.core.types import GenerationOptions, GenerationResult, PromptBundle, TokenUsageRecord
from tradegen.providers.base import ProviderAdapter, as_int, require_text

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ProviderAdapter):
    name = "anthropic"
    display_name = "Anthropic Claude"
    default_model = "claude-sonnet-4-20250514"
    base_url = "https://api.anthropic.com/v1/messages"

    async def generate(
        self,
        prompt: PromptBundle,
        api_key: str,
        options: GenerationOptions,
    ) -> GenerationResult:
        model = self.resolve_model(options)
        payload = {
            "model": model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "system": prompt.system_prompt,
            "messages": [{"role": "user", "content": prompt.user_prompt}],
        }
        headers = {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
        body = await self._post_json(self.base_url, headers=headers, payload=payload)

        blocks = body.get("content")
        if not isinstance(blocks, list):
            raise ProviderError("anthropic response without content blocks", provider=self.name)
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = body.get("usage") or {}
        return GenerationResult(
            content=require_text(self.name, text),
            usage=TokenUsageRecord(
                input_tokens=as_int(usage.get("input_tokens")),
                output_tokens=as_int(usage.get("output_tokens")),
            ),
            raw=body,
            model=str(body.get("model") or model),
            finish_reason=body.get("stop_reason"),
        )
