"""Rounding and value shaping shared by the report generators and CSV export.

Database drivers hand back different types for the same column (Decimal or
float for money, ``date`` or ISO text for dates), so every conversion goes
through these helpers.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

CENT = Decimal("0.01")
WHOLE = Decimal("1")


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> float:
    """Round half up to whole pence."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def percentage(part: Any, whole: Any) -> int:
    """``part / whole`` as a whole percentage, 0 when ``whole`` is not positive."""
    whole = to_decimal(whole)
    if whole <= 0:
        return 0
    return int((to_decimal(part) * 100 / whole).quantize(WHOLE, rounding=ROUND_HALF_UP))


def to_int(value: Any) -> int:
    if value is None:
        return 0
    return int(value)


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def iso_date(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def short_date(value: Any) -> str:
    """DD/MM/YYYY, or an empty string for missing dates."""
    parsed = parse_date(value)
    return parsed.strftime("%d/%m/%Y") if parsed else ""


def currency(value: Any) -> str:
    if value is None or value == "":
        return ""
    return f"£{to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)}"


def days_between(start: date, end: date) -> int:
    """Whole calendar days from ``start`` to ``end``."""
    return (end - start).days
