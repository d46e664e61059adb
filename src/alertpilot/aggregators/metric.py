"""Reduce the log entries matched by a rule to a single comparable number.

Kinds:
    count   number of entries
    rate    entries per minute over the rule's own look-back window
            (count / time_window_minutes)
    avg, sum, min, max
            computed over ``metadata["value"]`` coerced to float; entries
            whose value is missing, boolean or not numeric are left out

Every kind yields 0.0 for an empty input — the result is never NaN.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Sequence

from ..errors import MalformedRuleError
from ..models import AGGREGATIONS, LogEntry

VALUE_KEY = "value"


def _numeric(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def numeric_values(entries: Iterable[LogEntry], key: str = VALUE_KEY) -> list[float]:
    """Extract the usable numeric metadata values from *entries*."""
    values: list[float] = []
    for entry in entries:
        value = _numeric(entry.metadata.get(key))
        if value is not None:
            values.append(value)
    return values


def aggregate(entries: Sequence[LogEntry], kind: str, window_minutes: int) -> float:
    """Aggregate *entries* according to *kind*.

    Raises MalformedRuleError for an unknown kind or a non-positive window
    on ``rate``; both can only come from a rule that skipped validation.
    """
    if kind not in AGGREGATIONS:
        raise MalformedRuleError("?", [f"unknown aggregation {kind!r}"])

    if kind == "count":
        return float(len(entries))
    if kind == "rate":
        if window_minutes <= 0:
            raise MalformedRuleError("?", ["rate needs a positive time window"])
        return len(entries) / window_minutes

    values = numeric_values(entries)
    if not values:
        return 0.0
    if kind == "sum":
        return math.fsum(values)
    if kind == "avg":
        return math.fsum(values) / len(values)
    if kind == "min":
        return min(values)
    return max(values)
