"""Error taxonomy shared by the signal pipeline steps."""

from __future__ import annotations

from typing import Any


class TradeGenError(Exception):
    """Base pipeline error. Subclasses flag whether a retry can help."""

    retryable: bool = False


class ConfigurationError(TradeGenError):
    """Raised for missing API keys or unknown providers."""


class PriceFeedError(TradeGenError):
    """Raised when the bulk exchange price call fails."""

    retryable = True


class ProviderError(TradeGenError):
    """Non-retryable AI provider failure with HTTP diagnostics."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
        body_excerpt: str = "",
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body_excerpt = body_excerpt


class ProviderAuthError(ProviderError):
    """Provider rejected the credentials (401/403)."""


class ProviderRateLimitError(ProviderError):
    """Provider throttled the request (429)."""

    retryable = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ProviderUnavailableError(ProviderError):
    """Transient provider outage: 5xx status or transport failure."""

    retryable = True


class ProviderTimeoutError(ProviderError):
    """HTTP-level timeout while waiting for the provider."""

    retryable = True


class ResponseParseError(TradeGenError):
    """AI text did not contain any parseable trade structure."""


class StepTimeoutError(TradeGenError):
    """A step exceeded its wall-clock budget; the in-flight call was abandoned."""

    retryable = True

    def __init__(self, step: str, timeout_s: float) -> None:
        super().__init__(f"Step '{step}' timed out after {timeout_s:g}s")
        self.step = step
        self.timeout_s = timeout_s


class PipelineStepError(TradeGenError):
    """Terminal run error naming the failing step, attempts, and root cause."""

    def __init__(self, step: str, attempts: int, cause: BaseException) -> None:
        super().__init__(f"Pipeline failed at step '{step}' after {attempts} attempt(s): {cause}")
        self.step = step
        self.attempts = attempts
        self.cause = cause

    @property
    def retries_attempted(self) -> int:
        return max(0, self.attempts - 1)

    def to_dict(self) -> dict[str, object]:
        return {
            "step": self.step,
            "attempts": self.attempts,
            "retriesAttempted": self.retries_attempted,
            "errorType": type(self.cause).__name__,
            "message": str(self.cause),
            "retryable": is_retryable(self.cause),
        }


def is_retryable(exc: BaseException) -> bool:
    """Return whether the orchestrator may retry after ``exc``."""
    return isinstance(exc, TradeGenError) and exc.retryable
