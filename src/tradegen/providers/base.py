"""Provider adapter contract and shared HTTP error classification."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from tradegen.core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from tradegen.core.types import GenerationOptions, GenerationResult, PromptBundle

BODY_EXCERPT_LIMIT = 500


class ProviderAdapter(ABC):
    """One AI vendor: request building, response extraction, and usage mapping.

    Adapters perform a single HTTP attempt. Retry policy belongs to the
    orchestrator, which reads ``retryable`` off the raised error.
    """

    name: str = ""
    display_name: str = ""
    default_model: str = ""
    base_url: str = ""

    def __init__(self, *, base_url: str | None = None, timeout_s: float = 60.0) -> None:
        if base_url:
            self.base_url = base_url
        self._timeout_s = timeout_s

    @abstractmethod
    async def generate(
        self,
        prompt: PromptBundle,
        api_key: str,
        options: GenerationOptions,
    ) -> GenerationResult:
        """Send ``prompt`` and return the generated text with token usage."""

    def resolve_model(self, options: GenerationOptions) -> str:
        return (options.model or "").strip() or self.default_model

    def info(self) -> dict[str, str]:
        return {"name": self.name, "displayName": self.display_name, "defaultModel": self.default_model}

    async def _post_json(self, url: str, *, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_s)) as client:
                response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{self.name} request timed out", provider=self.name) from exc
        except httpx.HTTPStatusError as exc:
            raise classify_status_error(self.name, exc.response) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                f"{self.name} request failed: {exc}", provider=self.name
            ) from exc
        except ValueError as exc:
            raise ProviderError(f"{self.name} returned a non-JSON body", provider=self.name) from exc

        if not isinstance(body, dict):
            raise ProviderError(f"{self.name} returned an unexpected payload", provider=self.name)
        return body


def classify_status_error(provider: str, response: httpx.Response) -> ProviderError:
    """Map an HTTP error status to the matching provider error type."""
    status_code = response.status_code
    body_excerpt = extract_response_excerpt(response.text, limit=BODY_EXCERPT_LIMIT)
    message = f"{provider} request failed (status={status_code}, body={body_excerpt!r})"
    details: dict[str, Any] = {"provider": provider, "status_code": status_code, "body_excerpt": body_excerpt}

    if status_code in (401, 403):
        return ProviderAuthError(message, **details)
    if status_code == 429:
        return ProviderRateLimitError(
            message, retry_after=_parse_retry_after(response.headers.get("retry-after")), **details
        )
    if status_code >= 500:
        return ProviderUnavailableError(message, **details)
    return ProviderError(message, **details)


def extract_response_excerpt(raw_text: str, *, limit: int) -> str:
    """Normalize body text and keep only a short excerpt for safe diagnostics."""
    compact = re.sub(r"\s+", " ", raw_text).strip()
    if not compact:
        return "<empty>"
    return compact[:limit]


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def require_text(provider: str, content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ProviderError(f"{provider} returned empty content", provider=provider)
    return content.strip()


def as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
