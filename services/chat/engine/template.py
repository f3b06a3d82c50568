"""Placeholder interpolation for {variable_name} syntax in bot messages."""

import json
import math
from typing import Dict, Any


def stringify(value: Any) -> str:
    """Renders a bound value the way it reads in a chat transcript"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(text: str, variables: Dict[str, Any]) -> str:
    """Literal replace of {name} for every bound variable.

    Placeholders naming unbound variables are left verbatim.
    """
    result = text
    for name, value in variables.items():
        result = result.replace("{" + name + "}", stringify(value))
    return result
