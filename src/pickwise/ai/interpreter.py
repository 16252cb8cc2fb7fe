"""Turn a finished model reply into a :class:`DecisionAction`.

The model is instructed to answer with exactly one JSON object. Extraction is
a greedy scan from the first ``{`` to the last ``}``, so several objects in
one reply (or stray braces in surrounding prose) yield ``invalid_json``. A
reply with no ``{`` at all is ``no_json_found``; an opening brace that is never
closed is ``invalid_json``.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import ParseError
from .ai_types import DecisionAction, DecisionActionKind, DecisionTool

__all__ = ["InterpretResult", "extract_json_span", "interpret"]

LOGGER = logging.getLogger(__name__)

_MIN_PROBABILITY = 0.0
_MAX_PROBABILITY = 100.0


@dataclass(frozen=True, slots=True)
class InterpretResult:
    """Either an ``action`` or an ``error``, never both."""

    action: DecisionAction | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.action is not None


def extract_json_span(text: str) -> str | None:
    """Return the substring from the first ``{`` through the last ``}``."""

    if not text:
        return None
    start = text.find("{")
    if start < 0:
        return None
    end = text.rfind("}")
    if end < start:
        return None
    return text[start : end + 1]


def interpret(final_buffer: str) -> InterpretResult:
    span = extract_json_span(final_buffer)
    if span is None:
        if "{" in (final_buffer or ""):
            return InterpretResult(error=ParseError.invalid_json("unterminated object"))
        return InterpretResult(error=ParseError.no_json_found())
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError as exc:
        return InterpretResult(error=ParseError.invalid_json(str(exc)))
    if not isinstance(parsed, dict):
        return InterpretResult(error=ParseError.invalid_json("top-level value is not an object"))
    return _to_action(parsed)


def _to_action(payload: Mapping[str, Any]) -> InterpretResult:
    tool = DecisionTool.coerce(payload.get("tool"))
    if tool is None:
        return InterpretResult(error=ParseError.invalid_json(f"unknown tool {payload.get('tool')!r}"))

    raw_action = payload.get("action")
    action: DecisionActionKind | None = None
    if raw_action is not None:
        try:
            action = DecisionActionKind(str(raw_action).strip().lower())
        except ValueError:
            LOGGER.debug("Ignoring unrecognized action %r", raw_action)

    options = payload.get("options") or []
    if not isinstance(options, list):
        return InterpretResult(error=ParseError.invalid_json("'options' must be a list"))

    probabilities = payload.get("probabilities") or []
    if not isinstance(probabilities, list):
        return InterpretResult(error=ParseError.invalid_json("'probabilities' must be a list"))
    weights: list[float] = []
    for value in probabilities:
        weight = _coerce_probability(value)
        if weight is None:
            return InterpretResult(error=ParseError.invalid_json(f"probability {value!r} is not a number"))
        weights.append(weight)

    return InterpretResult(
        action=DecisionAction(
            tool=tool,
            action=action,
            options=tuple(str(option) for option in options),
            probabilities=tuple(weights),
            reasoning=_optional_text(payload.get("reasoning")),
            question=_optional_text(payload.get("question")),
        )
    )


def _coerce_probability(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return min(_MAX_PROBABILITY, max(_MIN_PROBABILITY, number))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
