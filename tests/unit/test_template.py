"""
Unit tests for message interpolation.
"""

from services.chat.engine.template import interpolate, stringify


def test_interpolate_bound_variable():
    assert interpolate("Hi {name}", {"name": "Alice"}) == "Hi Alice"


def test_unbound_placeholder_left_verbatim():
    """Placeholders with no binding stay as written"""
    assert interpolate("Hi {name}, order {order_id}", {"name": "Bob"}) == "Hi Bob, order {order_id}"


def test_repeated_placeholder_replaced_everywhere():
    assert interpolate("{x} and {x}", {"x": 1}) == "1 and 1"


def test_interpolate_without_variables():
    assert interpolate("Plain text", {}) == "Plain text"


def test_no_expression_evaluation():
    """Only exact names are replaced, nothing is evaluated"""
    assert interpolate("{a.b} {a}", {"a": "A"}) == "{a.b} A"


def test_stringify_scalars():
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(False) == "false"
    assert stringify(5.0) == "5"
    assert stringify(2.5) == "2.5"
    assert stringify(7) == "7"
    assert stringify("text") == "text"


def test_stringify_structures():
    assert stringify({"a": 1}) == '{"a": 1}'
    assert stringify([1, 2]) == "[1, 2]"


def test_interpolate_number_input():
    """Parsed number input reads back without a trailing .0"""
    assert interpolate("You are {age}", {"age": 30.0}) == "You are 30"
