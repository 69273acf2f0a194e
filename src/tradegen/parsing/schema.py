"""JSON Schema check for a single AI trade candidate."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

SCHEMA_PATH = Path(__file__).with_name("trade_candidate.schema.json")


class CandidateSchema:
    """Validates raw candidates and renders readable per-field errors."""

    def __init__(self, schema_path: str | Path = SCHEMA_PATH) -> None:
        schema = json.loads(Path(schema_path).read_text(encoding="utf-8"))
        Draft202012Validator.check_schema(schema)
        self._validator = Draft202012Validator(schema)

    def errors(self, candidate: Any) -> list[str]:
        if not isinstance(candidate, dict):
            return [f"Trade element must be an object, got {type(candidate).__name__}"]
        found = sorted(self._validator.iter_errors(candidate), key=_sort_key)
        return [_describe(error) for error in found]


def _sort_key(error: ValidationError) -> tuple[str, str]:
    return ("/".join(str(part) for part in error.absolute_path), error.message)


def _describe(error: ValidationError) -> str:
    field = "/".join(str(part) for part in error.absolute_path)
    if error.validator == "required":
        missing = error.message.split("'")[1] if "'" in error.message else error.message
        return f"Missing required field: {missing}"
    if error.validator == "anyOf" and not field:
        return "Missing required field: strategy"
    if error.validator == "oneOf":
        if field == "ipe":
            return "Invalid ipe: must be a number"
        return f"Invalid {field}: must be a positive number"
    if error.validator == "pattern" and field in ("strategy", "direction"):
        return f"Invalid {field}: {error.instance!r}. Must be LONG or SHORT"
    if field:
        return f"Invalid {field}: {error.message}"
    return error.message
