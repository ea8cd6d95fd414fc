"""
Money helpers for the job cost engine.
All monetary values are carried as integer cents; Decimal is used for every
conversion and every percentage multiply so results never pick up float drift.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

import pandas as pd

_ONE = Decimal('1')
_HUNDRED = Decimal('100')


def to_decimal(value: Union[str, float, int, Decimal]) -> Decimal:
    """Convert a number to Decimal via its string form (avoids binary float artifacts)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_cents(value: Union[Decimal, float, int]) -> int:
    """Round a (possibly fractional) cent amount to whole cents, half up."""
    return int(to_decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def parse_money_to_cents(value: Union[str, float, int, Decimal, None]) -> int:
    """
    Parse a currency amount to integer cents.

    Handles:
        133333.33      → 13333333
        "$1,234.56"    → 123456
        "($1,000.00)"  → -100000 (accounting negative)
        None, NaN, ""  → 0

    Raises:
        ValueError: for text that is not a currency amount
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return 0

    if isinstance(value, (int, float, Decimal)):
        return round_cents(to_decimal(value) * _HUNDRED)

    s = str(value).strip()
    if s == '' or s == '-':
        return 0

    negative = s.startswith('-') or (s.startswith('(') and s.endswith(')'))
    s = re.sub(r'[^\d.]', '', s)
    if s == '' or s.count('.') > 1:
        raise ValueError(f"Not a currency amount: {value!r}")

    try:
        cents = round_cents(Decimal(s) * _HUNDRED)
    except InvalidOperation:
        raise ValueError(f"Not a currency amount: {value!r}")
    return -cents if negative else cents


def cents_to_display(cents: int) -> str:
    """Format integer cents as USD display string."""
    if cents < 0:
        return f"-${abs(cents)/100:,.2f}"
    return f"${cents/100:,.2f}"


def percent_of(amount_cents: int, percent: Union[float, Decimal]) -> int:
    """Return ``percent`` % of ``amount_cents``, rounded to whole cents."""
    return round_cents(Decimal(amount_cents) * to_decimal(percent) / _HUNDRED)
