"""Google Gemini generateContent adapter."""

from __future__ import annotations

from tradegen.core.errors import ProviderError
from tradegen.core.types import GenerationOptions, GenerationResult, PromptBundle, TokenUsageRecord
from tradegen.providers.base import ProviderAdapter, as_int, require_text

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class GoogleAdapter(ProviderAdapter):
    """Gemini has no system role here, so the combined prompt is sent as one part."""

    name = "google"
    display_name = "Google Gemini"
    default_model = "gemini-1.5-pro"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def generate(
        self,
        prompt: PromptBundle,
        api_key: str,
        options: GenerationOptions,
    ) -> GenerationResult:
        model = self.resolve_model(options)
        payload = {
            "contents": [{"parts": [{"text": prompt.full_prompt}]}],
            "generationConfig": {
                "maxOutputTokens": options.max_tokens,
                "temperature": options.temperature,
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_ONLY_HIGH"} for category in _SAFETY_CATEGORIES
            ],
        }
        url = f"{self.base_url.rstrip('/')}/models/{model}:generateContent"
        # header auth keeps the key out of URLs that show up in error messages
        body = await self._post_json(url, headers={"x-goog-api-key": api_key}, payload=payload)

        candidates = body.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            raise ProviderError("google response without candidates", provider=self.name)
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))

        usage = body.get("usageMetadata") or {}
        return GenerationResult(
            content=require_text(self.name, text),
            usage=TokenUsageRecord(
                input_tokens=as_int(usage.get("promptTokenCount")),
                output_tokens=as_int(usage.get("candidatesTokenCount")),
            ),
            raw=body,
            model=model,
            finish_reason=candidate.get("finishReason"),
        )
