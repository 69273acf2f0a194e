"""Per-run telemetry sink: structured events in a bounded buffer, mirrored to logging."""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from datetime import UTC, datetime
from typing import Any

_SENSITIVE_KEYS = {"api_key", "apikey", "api_keys", "apikeys", "password", "secret", "token", "authorization"}
_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class RingBuffer:
    def __init__(self, max_size: int = 500) -> None:
        self._items: deque[dict[str, Any]] = deque(maxlen=max_size)

    def append(self, item: dict[str, Any]) -> None:
        self._items.append(item)

    def items(self) -> list[dict[str, Any]]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class PipelineTelemetry:
    """Structured event log and step timings for one pipeline run."""

    def __init__(
        self,
        execution_id: str,
        *,
        logger: logging.Logger | None = None,
        buffer: RingBuffer | None = None,
    ) -> None:
        self.execution_id = execution_id
        self._logger = logger or logging.getLogger(__name__)
        self._buffer = buffer or RingBuffer()
        self._started = time.perf_counter()
        self._step_started: dict[str, float] = {}
        self._step_timings: dict[str, dict[str, Any]] = {}
        self.metadata: dict[str, Any] = {}

    def log(self, level: str, step: str, message: str, **data: Any) -> dict[str, Any]:
        entry = {
            "type": "log",
            "level": level,
            "ts": datetime.now(tz=UTC).isoformat(),
            "elapsed_ms": round((time.perf_counter() - self._started) * 1000, 3),
            "execution_id": self.execution_id,
            "step": step,
            "message": message,
            "data": _sanitize(data),
        }
        self._buffer.append(entry)
        self._logger.log(
            _LEVELS.get(level, logging.INFO),
            "%s execution_id=%s step=%s data=%s",
            message,
            self.execution_id,
            step,
            json.dumps(entry["data"], ensure_ascii=False, default=str),
        )
        return entry

    def debug(self, step: str, message: str, **data: Any) -> dict[str, Any]:
        return self.log("debug", step, message, **data)

    def info(self, step: str, message: str, **data: Any) -> dict[str, Any]:
        return self.log("info", step, message, **data)

    def warn(self, step: str, message: str, **data: Any) -> dict[str, Any]:
        return self.log("warn", step, message, **data)

    def error(self, step: str, message: str, **data: Any) -> dict[str, Any]:
        return self.log("error", step, message, **data)

    def start_step(self, step: str) -> None:
        self._step_started[step] = time.perf_counter()
        self.info(step, "step_start")

    def end_step(self, step: str, status: str) -> float:
        """Close the timing window for ``step`` and return its duration in ms."""
        started = self._step_started.pop(step, None)
        duration_ms = 0.0 if started is None else round((time.perf_counter() - started) * 1000, 3)
        self._step_timings[step] = {"duration_ms": duration_ms, "status": status}
        self.info(step, "step_end", duration_ms=duration_ms, status=status)
        return duration_ms

    def events(self, *, step: str | None = None) -> list[dict[str, Any]]:
        items = self._buffer.items()
        if step is None:
            return items
        return [item for item in items if item["step"] == step]

    def has_errors(self) -> bool:
        return any(item["level"] == "error" for item in self._buffer.items())

    def summary(self) -> dict[str, Any]:
        items = self._buffer.items()
        errors = [{"step": e["step"], "message": e["message"]} for e in items if e["level"] == "error"]
        warnings = [{"step": e["step"], "message": e["message"]} for e in items if e["level"] == "warn"]
        return {
            "execution_id": self.execution_id,
            "total_duration_ms": round((time.perf_counter() - self._started) * 1000, 3),
            "steps_executed": list(self._step_timings.keys()),
            "step_timings": dict(self._step_timings),
            "error_count": len(errors),
            "warning_count": len(warnings),
            "errors": errors,
            "warnings": warnings,
            "metadata": dict(self.metadata),
        }

    def export(self) -> dict[str, Any]:
        return {"events": self.events(), "summary": self.summary()}


def _sanitize(data: dict[str, Any]) -> dict[str, Any]:
    """Redact credential-looking keys and make values JSON-safe."""
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower().replace("-", "_") in _SENSITIVE_KEYS:
            sanitized[key] = "[REDACTED]"
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = repr(value)
        sanitized[key] = value
    return sanitized
