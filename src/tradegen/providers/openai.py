"""OpenAI-compatible chat completions adapters (OpenAI, xAI, OpenRouter)."""

from __future__ import annotations

from typing import Any

from tradegen.core.errors import ProviderError
from tradegen.core.types import GenerationOptions, GenerationResult, PromptBundle, TokenUsageRecord
from tradegen.providers.base import ProviderAdapter, as_int, require_text


class ChatCompletionsAdapter(ProviderAdapter):
    """Shared request/response handling for chat-completions style endpoints."""

    json_mode = False

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def build_payload(self, prompt: PromptBundle, model: str, options: GenerationOptions) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": prompt.system_prompt},
                {"role": "user", "content": prompt.user_prompt},
            ],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def generate(
        self,
        prompt: PromptBundle,
        api_key: str,
        options: GenerationOptions,
    ) -> GenerationResult:
        model = self.resolve_model(options)
        body = await self._post_json(
            self.base_url,
            headers=self.build_headers(api_key),
            payload=self.build_payload(prompt, model, options),
        )

        choices = body.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderError(f"{self.name} response without choices", provider=self.name)
        choice = choices[0] if isinstance(choices[0], dict) else {}
        message = choice.get("message")
        if not isinstance(message, dict):
            raise ProviderError(f"{self.name} response without message payload", provider=self.name)

        usage = body.get("usage") or {}
        return GenerationResult(
            content=require_text(self.name, message.get("content")),
            usage=TokenUsageRecord(
                input_tokens=as_int(usage.get("prompt_tokens")),
                output_tokens=as_int(usage.get("completion_tokens")),
            ),
            raw=body,
            model=str(body.get("model") or model),
            finish_reason=choice.get("finish_reason"),
        )


class OpenAIAdapter(ChatCompletionsAdapter):
    name = "openai"
    display_name = "OpenAI GPT"
    default_model = "gpt-4-turbo-preview"
    base_url = "https://api.openai.com/v1/chat/completions"
    json_mode = True


class XAIAdapter(ChatCompletionsAdapter):
    name = "xai"
    display_name = "xAI Grok"
    default_model = "grok-beta"
    base_url = "https://api.x.ai/v1/chat/completions"


class OpenRouterAdapter(ChatCompletionsAdapter):
    name = "openrouter"
    display_name = "OpenRouter"
    default_model = "openai/gpt-4o-mini"
    base_url = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float = 60.0,
        referer: str = "",
        title: str = "",
    ) -> None:
        super().__init__(base_url=base_url, timeout_s=timeout_s)
        self._referer = referer.strip()
        self._title = title.strip()

    def build_headers(self, api_key: str) -> dict[str, str]:
        headers = super().build_headers(api_key)
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers
