"""Monetary helpers. All amounts leave this module as integer minor units."""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

_STRIP_RE = re.compile(r"[$,]")


def round_half_away(value: Union[float, Decimal]) -> int:
    """Round to the nearest integer, halves away from zero (12.5 -> 13, -12.5 -> -13)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount: Union[float, Decimal, str]) -> int:
    """Convert a major-unit amount (dollars) to minor units (cents).

    Goes through the decimal string form so 0.125 becomes 12.5 cents
    exactly before rounding.
    """
    if isinstance(amount, str):
        amount = parse_amount(amount)
    return round_half_away(Decimal(str(amount)) * 100)


def parse_amount(value: Any) -> float:
    """Parse a loosely formatted price ("$1,200.50", 3, None) to a float.

    Unparseable input, NaN and infinities all yield 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _STRIP_RE.sub("", str(value)).strip()
        match = re.match(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?", text)
        if not match:
            return 0.0
        try:
            number = float(match.group(0))
        except (ValueError, InvalidOperation):
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number
