"""User input validation for input nodes."""

import math
import re
from dataclasses import dataclass
from typing import Any, Optional
from services.chat.engine.template import stringify
from shared.types import InputNodeData, InputType, InputValidationRules, VariableType

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


@dataclass
class InputValidationResult:
    is_valid: bool
    value: Any = None
    error: Optional[str] = None


def _invalid(error: str) -> InputValidationResult:
    return InputValidationResult(is_valid=False, error=error)


def parse_number(text: str) -> Optional[float]:
    """Finite decimal numbers only; rejects inf, nan and digit separators"""
    text = text.strip()
    if "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def validate_input(raw: str, node_data: InputNodeData) -> InputValidationResult:
    """Checks raw user text against the input node's type and rules.

    Numbers come back parsed; every other type returns the raw text.
    """
    rules = node_data.validation or InputValidationRules()

    if rules.required and not raw.strip():
        return _invalid("This field is required")

    input_type = node_data.input_type

    if input_type == InputType.NUMBER.value:
        number = parse_number(raw)
        if number is None:
            return _invalid("Please enter a valid number")
        if rules.min is not None and number < rules.min:
            return _invalid(f"Minimum value is {stringify(rules.min)}")
        if rules.max is not None and number > rules.max:
            return _invalid(f"Maximum value is {stringify(rules.max)}")
        return InputValidationResult(is_valid=True, value=number)

    if input_type == InputType.EMAIL.value:
        if not EMAIL_PATTERN.match(raw):
            return _invalid("Please enter a valid email address")
        return InputValidationResult(is_valid=True, value=raw)

    if input_type == InputType.CHOICE.value:
        if raw not in (node_data.choices or []):
            return _invalid("Please select a valid option")
        return InputValidationResult(is_valid=True, value=raw)

    # text, and anything unrecognised
    if rules.pattern:
        try:
            matched = re.search(rules.pattern, raw)
        except re.error:
            matched = None
        if not matched:
            return _invalid("Invalid format")
    # A bound of 0 means no bound
    if rules.min and len(raw) < rules.min:
        return _invalid(f"Minimum length is {stringify(rules.min)} characters")
    if rules.max and len(raw) > rules.max:
        return _invalid(f"Maximum length is {stringify(rules.max)} characters")
    return InputValidationResult(is_valid=True, value=raw)


TRUE_WORDS = {"true", "yes", "y", "1"}
FALSE_WORDS = {"false", "no", "n", "0"}


def coerce_to_declared_type(value: Any, declared: VariableType) -> InputValidationResult:
    """Holds a value to its flow variable declaration; arrays and objects stay dynamic"""
    if declared == VariableType.STRING:
        return InputValidationResult(is_valid=True, value=value if isinstance(value, str) else stringify(value))

    if declared == VariableType.NUMBER:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return InputValidationResult(is_valid=True, value=value)
        number = parse_number(str(value))
        if number is None:
            return _invalid("Please enter a valid number")
        return InputValidationResult(is_valid=True, value=number)

    if declared == VariableType.BOOLEAN:
        if isinstance(value, bool):
            return InputValidationResult(is_valid=True, value=value)
        word = str(value).strip().lower()
        if word in TRUE_WORDS:
            return InputValidationResult(is_valid=True, value=True)
        if word in FALSE_WORDS:
            return InputValidationResult(is_valid=True, value=False)
        return _invalid("Please enter a valid boolean")

    return InputValidationResult(is_valid=True, value=value)
