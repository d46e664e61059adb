"""Threshold comparison between an aggregated value and a rule threshold."""
from __future__ import annotations

import logging
import operator as _op
from typing import Any, Callable

from ..models import OPERATOR_ALIASES

logger = logging.getLogger(__name__)

OPERATOR_MAP: dict[str, Callable[[Any, Any], bool]] = {
    ">": _op.gt,
    ">=": _op.ge,
    "<": _op.lt,
    "<=": _op.le,
    "==": _op.eq,
    "!=": _op.ne,
}


def evaluate(value: float, threshold: float, operator: str) -> bool:
    """Return ``value <operator> threshold``.

    Unknown operators and values that cannot be compared evaluate to False
    so a malformed rule never raises out of the evaluation loop.
    """
    func = OPERATOR_MAP.get(OPERATOR_ALIASES.get(operator, operator))
    if func is None:
        logger.debug("Unknown comparison operator %r — condition is false", operator)
        return False
    try:
        return bool(func(value, threshold))
    except TypeError:
        return False
