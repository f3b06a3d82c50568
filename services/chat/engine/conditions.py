"""Fixed operator set for condition nodes."""

import math
from typing import Any, Callable, Dict
from services.chat.engine.template import stringify


def to_number(value: Any) -> float:
    """Float coercion; anything unparseable becomes NaN"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    return math.nan


def loose_equals(left: Any, right: Any) -> bool:
    """Equality that tolerates number/string/boolean mismatches ("18" == 18)"""
    if left is None or right is None:
        return left is None and right is None

    scalar = (str, int, float, bool)
    if isinstance(left, scalar) and isinstance(right, scalar):
        if isinstance(left, str) and isinstance(right, str):
            return left == right
        return to_number(left) == to_number(right)

    return left == right


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def evaluate(left: Any, right: Any) -> bool:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
        return compare(a, b)
    return evaluate


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": loose_equals,
    "!=": lambda left, right: not loose_equals(left, right),
    ">": _numeric(lambda a, b: a > b),
    "<": _numeric(lambda a, b: a < b),
    ">=": _numeric(lambda a, b: a >= b),
    "<=": _numeric(lambda a, b: a <= b),
    "contains": lambda left, right: stringify(right) in stringify(left),
    "startsWith": lambda left, right: stringify(left).startswith(stringify(right)),
    "endsWith": lambda left, right: stringify(left).endswith(stringify(right)),
}


def evaluate_condition(value: Any, operator: str, compare_value: Any) -> bool:
    """Unknown operators never match"""
    evaluate = OPERATORS.get(operator)
    if evaluate is None:
        return False
    return evaluate(value, compare_value)
