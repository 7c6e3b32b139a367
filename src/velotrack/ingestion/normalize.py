"""Lenient value coercion for producer-supplied payload fields."""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    """Return *value* as a float, or ``None`` if it is not numeric."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result
