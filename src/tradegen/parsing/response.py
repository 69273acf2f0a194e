"""Recover trade candidates from AI text and normalize them into trade records."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tradegen.core.errors import ResponseParseError
from tradegen.core.models import (
    ConfidenceFactor,
    CriterionMatch,
    NormalizedTrade,
    ParseIssue,
    TradeReasoning,
    ValidationWarning,
)
from tradegen.core.types import PriceQuote
from tradegen.feed.prices import to_exchange_symbol
from tradegen.parsing.schema import CandidateSchema

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_REASONING_FIELDS = (
    ("whyAsset", "why_asset"),
    ("whyDirection", "why_direction"),
    ("whyEntry", "why_entry"),
    ("whyLevels", "why_levels"),
)
_TRADE_KEYS = ("asset", "entry", "takeProfit", "stopLoss")


@dataclass(slots=True)
class ParseContext:
    """Everything normalization needs besides the AI text itself."""

    execution_id: str
    created_at: datetime
    strategy_id: str | None = None
    strategy_name: str = "Custom Strategy"
    leverage: float = 1.0
    capital_per_trade: float = 0.0
    prices: Mapping[str, PriceQuote] = field(default_factory=dict)
    min_criteria: int = 3


@dataclass(slots=True)
class ParseResult:
    trades: list[NormalizedTrade] = field(default_factory=list)
    parse_errors: list[ParseIssue] = field(default_factory=list)
    validation_warnings: list[ValidationWarning] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


def extract_json_array(text: str) -> list[Any] | None:
    """Return the trade candidates found in ``text``, or ``None``.

    When the whole text is one JSON document it is used as is: a trade
    array, a single trade object, or an object holding a ``trades`` list.
    Otherwise the first balanced array embedded in the text wins, then a
    fenced code block, where a single object is wrapped into a list.
    """

    found = _extract(text)
    return None if found is None else found[0]


def _extract(text: str) -> tuple[list[Any], str] | None:
    if not text:
        return None

    document = _whole_document(text.strip())
    if document is not None:
        return document, "document"

    direct = _scan_for_array(text)
    if direct is not None:
        return direct, "array"

    for match in _FENCE_RE.finditer(text):
        body = match.group(1).strip()
        try:
            value = json.loads(body)
        except ValueError:
            value = _scan_for_array(body)
        if isinstance(value, dict):
            trades = value.get("trades")
            return (trades if isinstance(trades, list) else [value]), "fenced"
        if isinstance(value, list):
            return value, "fenced"
    return None


def _whole_document(text: str) -> list[Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if isinstance(value, list):
        return value if _is_trade_list(value) else None
    if isinstance(value, dict):
        trades = value.get("trades")
        if isinstance(trades, list):
            return trades
        if any(key in value for key in _TRADE_KEYS):
            return [value]
    return None


def _is_trade_list(value: list[Any]) -> bool:
    return not value or any(isinstance(item, dict) for item in value)


def _scan_for_array(text: str) -> list[Any] | None:
    start = text.find("[")
    while start != -1:
        end = _matching_bracket(text, start)
        if end is not None:
            try:
                value = json.loads(text[start : end + 1])
            except ValueError:
                value = None
            if isinstance(value, list) and _is_trade_list(value):
                return value
        start = text.find("[", start + 1)
    return None


def _matching_bracket(text: str, start: int) -> int | None:
    """Index of the ``]`` closing ``text[start]``, skipping brackets inside strings."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return None


class ResponseParser:
    """Pure text -> trades transformation; malformed elements are isolated per index."""

    def __init__(self, schema: CandidateSchema | None = None) -> None:
        self._schema = schema or CandidateSchema()

    def parse(self, ai_text: str, context: ParseContext) -> ParseResult:
        found = _extract(ai_text)
        if found is None:
            raise ResponseParseError("Failed to extract a JSON trade array from the AI response")
        candidates, extraction = found

        result = ParseResult()
        for index, candidate in enumerate(candidates):
            errors = self._schema.errors(candidate)
            if errors:
                result.parse_errors.append(ParseIssue(index=index, errors=errors))
                logger.warning("trade_candidate_rejected index=%s errors=%s", index, errors)
                continue
            try:
                trade = normalize_trade(candidate, index, context)
            except ValueError as exc:
                result.parse_errors.append(ParseIssue(index=index, errors=[str(exc)]))
                logger.warning("trade_candidate_rejected index=%s errors=%s", index, exc)
                continue
            result.trades.append(trade)
            result.validation_warnings.extend(
                ValidationWarning(source="parser", message=message, index=index, trade_id=trade.id)
                for message in trade.structural_warnings
            )

        result.metadata = {
            "extraction": extraction,
            "response_length": len(ai_text),
            "total_elements": len(candidates),
            "parsed": len(result.trades),
            "parse_errors": len(result.parse_errors),
        }
        return result


def trade_id_for(execution_id: str, index: int, candidate: Mapping[str, Any]) -> str:
    content = json.dumps(candidate, sort_keys=True, ensure_ascii=False, default=str)
    digest = hashlib.sha256(f"{execution_id}:{index}:{content}".encode("utf-8")).hexdigest()
    return f"trade_{digest[:16]}"


def normalize_trade(candidate: dict[str, Any], index: int, context: ParseContext) -> NormalizedTrade:
    """Build a trade from a schema-valid candidate, recomputing derived ratios."""
    entry = float(candidate["entry"])
    take_profit = float(candidate["takeProfit"])
    stop_loss = float(candidate["stopLoss"])
    for name, value in (("entry", entry), ("takeProfit", take_profit), ("stopLoss", stop_loss)):
        if value <= 0:
            raise ValueError(f"Invalid {name}: must be a positive number")
    direction = str(candidate.get("strategy") or candidate.get("direction")).strip().upper()

    asset, quote = _resolve_asset(str(candidate["asset"]), context.prices)

    reward = abs(take_profit - entry)
    risk = abs(entry - stop_loss)

    return NormalizedTrade(
        id=trade_id_for(context.execution_id, index, candidate),
        strategy_id=context.strategy_id,
        strategy_name=context.strategy_name,
        asset=asset,
        direction=direction,
        entry=entry,
        take_profit=take_profit,
        stop_loss=stop_loss,
        current_price=quote.price if quote is not None else None,
        risk_reward_ratio=round(reward / risk, 2) if risk > 0 else 0.0,
        risk_percent=round(risk / entry * 100, 2),
        reward_percent=round(reward / entry * 100, 2),
        ipe=float(candidate["ipe"]),
        summary=str(candidate.get("summary") or ""),
        reasoning=_reasoning(candidate.get("reasoning")),
        criteria_matched=_criteria(candidate.get("criteriaMatched")),
        confidence_factors=_confidence_factors(candidate.get("confidenceFactors")),
        created_at=context.created_at,
        leverage=context.leverage,
        capital=context.capital_per_trade,
        structural_warnings=structural_warnings(candidate, context),
        raw=candidate,
    )


def structural_warnings(candidate: Mapping[str, Any], context: ParseContext) -> list[str]:
    warnings: list[str] = []

    reasoning = candidate.get("reasoning")
    if not isinstance(reasoning, dict):
        warnings.append("Missing reasoning object")
    else:
        warnings.extend(
            f"Missing reasoning field: {key}" for key, _ in _REASONING_FIELDS if not reasoning.get(key)
        )

    criteria = candidate.get("criteriaMatched")
    if not isinstance(criteria, list):
        warnings.append("Missing or invalid criteriaMatched array")
    elif len(criteria) < context.min_criteria:
        warnings.append(f"Less than {context.min_criteria} criteria provided")
    # Confidence factor weights are reported by the confidence_weights check.
    return warnings


def _resolve_asset(asset: str, prices: Mapping[str, PriceQuote]) -> tuple[str, PriceQuote | None]:
    """Match ``BTC/USDT``, ``btc/usdt`` or ``BTCUSDT`` to a known quote."""
    symbol = asset.strip().upper()
    quote = prices.get(symbol)
    if quote is not None:
        return symbol, quote
    wanted = to_exchange_symbol(symbol)
    for known, candidate_quote in prices.items():
        if to_exchange_symbol(known) == wanted:
            return known, candidate_quote
    return symbol, None


def _reasoning(value: Any) -> TradeReasoning:
    if not isinstance(value, dict):
        return TradeReasoning()
    return TradeReasoning(**{attr: str(value.get(key) or "") for key, attr in _REASONING_FIELDS})


def _criteria(value: Any) -> list[CriterionMatch]:
    if not isinstance(value, list):
        return []
    criteria: list[CriterionMatch] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            criteria.append(CriterionMatch(criterion=item.strip()))
        elif isinstance(item, dict):
            name = item.get("criterion") or item.get("name")
            if not name:
                continue
            criteria.append(
                CriterionMatch(
                    criterion=str(name),
                    value=str(item.get("value", "N/A")),
                    threshold=str(item.get("threshold", "N/A")),
                    passed=bool(item.get("passed", True)),
                )
            )
    return criteria


def _confidence_factors(value: Any) -> list[ConfidenceFactor]:
    if not isinstance(value, list):
        return []
    factors: list[ConfidenceFactor] = []
    for item in value:
        if not isinstance(item, dict) or not item.get("factor"):
            continue
        weight = _float(item.get("weight"))
        score = _float(item.get("score"))
        contribution = item.get("contribution")
        factors.append(
            ConfidenceFactor(
                factor=str(item["factor"]),
                weight=weight,
                score=score,
                contribution=_float(contribution) if contribution is not None else round(weight * score / 100, 2),
            )
        )
    return factors


def _float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
