"""
Confidence Rules
================

Typed predicates that adjust an extraction's confidence from the shape of
its payload.

The rule set is closed: ``HasField``, ``Equals``, ``Threshold`` and
``LengthAbove``. Each rule carries a signed ``adjustment`` applied when it
matches. A rule that cannot be evaluated against a payload (wrong field
type, unknown operator) is skipped and never aborts scoring.

Usage:
    rules = [
        HasField("price", adjustment=0.2),
        LengthAbove("plans", 2, adjustment=0.1),
        Threshold("employees", ">=", 1, adjustment=0.05),
    ]
    confidence = apply_confidence_rules(0.5, {"price": "$10"}, rules)
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger("webprobe.research.rules")

_MISSING = object()

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}


def _lookup(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning ``_MISSING`` when absent."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass(frozen=True)
class HasField:
    """Matches when the field is present and not empty."""

    field: str
    adjustment: float = 0.1

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        value = _lookup(data, self.field)
        return value is not _MISSING and value is not None and value != "" and value != []


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any
    adjustment: float = 0.1

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        actual = _lookup(data, self.field)
        if isinstance(actual, str) and isinstance(self.value, str):
            return actual.strip().lower() == self.value.strip().lower()
        return actual == self.value


@dataclass(frozen=True)
class Threshold:
    """Numeric comparison of a field against a bound."""

    field: str
    op: str
    bound: float
    adjustment: float = 0.1

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        compare = _OPERATORS[self.op]
        value = _lookup(data, self.field)
        if value is _MISSING or value is None:
            return False
        return compare(float(value), self.bound)


@dataclass(frozen=True)
class LengthAbove:
    """Matches when a sized field has more than ``length`` items/characters."""

    field: str
    length: int
    adjustment: float = 0.1

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        value = _lookup(data, self.field)
        if value is _MISSING or value is None:
            return False
        return len(value) > self.length


ConfidenceRule = Union[HasField, Equals, Threshold, LengthAbove]


def apply_confidence_rules(
    base: float,
    data: Mapping[str, Any],
    rules: Sequence[ConfidenceRule],
) -> float:
    """Apply every matching rule's adjustment to ``base``, clamped to [0, 1]."""
    confidence = base
    for rule in rules:
        try:
            matched = rule.evaluate(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping rule {rule!r}: {e}")
            continue
        if matched:
            confidence += rule.adjustment
    return max(0.0, min(1.0, confidence))
