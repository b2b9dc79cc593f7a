"""
Value coercion helpers shared by the validator compiler and the
visibility evaluator.

Field values are dynamically typed (str, int/float, bool or None).
These functions give comparisons a fixed, total meaning across those
types: loose equality, numeric coercion and emptiness.
"""

import math
from datetime import date, datetime
from typing import Any

from dateutil import parser as dateutil_parser


def parse_date(value: Any) -> date | None:
    """Parse a date string (or date/datetime) into a date object.

    Returns None if the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    try:
        return dateutil_parser.parse(value).date()
    except (ValueError, TypeError, OverflowError):
        return None


def to_number(value: Any) -> float:
    """Coerce a value to a number.

    None -> 0, booleans -> 1/0, blank strings -> 0, numeric strings ->
    their value. Anything else is NaN, so every comparison with it is
    False.
    """
    if value is None:
        return 0.0
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


def is_number(value: Any) -> bool:
    """True for int/float values (booleans excluded) that are finite."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def loose_equals(left: Any, right: Any) -> bool:
    """Type-coercive equality.

    None only equals None. Booleans compare as 1/0. A number compared
    with a string compares numerically. Two strings compare exactly.
    """
    if left is None or right is None:
        return left is None and right is None

    if isinstance(left, bool):
        left = to_number(left)
    if isinstance(right, bool):
        right = to_number(right)

    if isinstance(left, str) and isinstance(right, str):
        return left == right

    if isinstance(left, (int, float, str)) and isinstance(right, (int, float, str)):
        return to_number(left) == to_number(right)

    return left == right


def is_empty(value: Any) -> bool:
    """True when the value is None or an empty string."""
    return value is None or value == ""
