"""
Unit tests for condition operators.
"""

import math
import pytest
from services.chat.engine.conditions import evaluate_condition, loose_equals, to_number


@pytest.mark.parametrize("value, expected", [
    ("5", 5.0),
    (" 2.5 ", 2.5),
    ("", 0.0),
    (True, 1.0),
    (False, 0.0),
    (3, 3.0),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_to_number_unparseable_is_nan():
    assert math.isnan(to_number("abc"))
    assert math.isnan(to_number(None))
    assert math.isnan(to_number({"a": 1}))


def test_loose_equals_mixed_types():
    assert loose_equals("18", 18)
    assert loose_equals(18.0, "18")
    assert loose_equals(True, 1)
    assert not loose_equals("abc", 0)


def test_loose_equals_strings_compare_directly():
    assert loose_equals("yes", "yes")
    assert not loose_equals("1.0", "1")


def test_loose_equals_none():
    assert loose_equals(None, None)
    assert not loose_equals(None, "")
    assert not loose_equals(0, None)


def test_equality_operators():
    assert evaluate_condition(18, "==", "18")
    assert evaluate_condition("a", "!=", "b")
    assert not evaluate_condition("a", "!=", "a")


def test_numeric_comparisons():
    assert evaluate_condition(20, ">", 18)
    assert evaluate_condition("20", ">=", "20")
    assert evaluate_condition(5, "<", 10)
    assert evaluate_condition(10, "<=", 10.0)
    assert not evaluate_condition(5, ">", 10)


def test_numeric_comparison_with_nan_is_false():
    """Non-numeric operands never satisfy an ordering"""
    assert not evaluate_condition("abc", ">", 1)
    assert not evaluate_condition("abc", "<", 1)
    assert not evaluate_condition(None, ">=", 0)


def test_string_operators():
    assert evaluate_condition("hello world", "contains", "lo w")
    assert evaluate_condition("hello", "startsWith", "he")
    assert evaluate_condition("hello", "endsWith", "llo")
    assert not evaluate_condition("hello", "contains", "xyz")


def test_string_operators_stringify_operands():
    assert evaluate_condition(12345, "contains", 234)
    assert evaluate_condition(None, "startsWith", "")


def test_unknown_operator_is_false():
    assert not evaluate_condition(1, "matches", 1)
    assert not evaluate_condition(1, None, 1)
