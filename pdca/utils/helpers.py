"""Shared utility functions for calendar-day dates and id lists.

parse_date:        returns None on empty/bad input
parse_date_input:  raises ValueError on bad input (request validation)
date_str:          date -> "YYYY-MM-DD"
unique_ids:        order-preserving de-duplication
round_half_up:     rounding used by every percentage
"""
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal


def parse_date(value):
    """Parse a ``YYYY-MM-DD`` string (or a datetime ISO string) to a date.

    Returns None for empty/invalid input. Date objects pass through.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Same as parse_date() but raises ValueError instead of returning None.

    Empty values return None; anything else must be a calendar date.
    """
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD.")
    return parsed


def date_str(value) -> str:
    """Normalise a date-like value to ``YYYY-MM-DD`` or the empty string."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else ""


def unique_ids(values) -> list:
    """De-duplicate an id list, keeping first occurrence order."""
    seen = set()
    result = []
    for v in values or []:
        if v in seen:
            continue
        seen.add(v)
        result.append(v)
    return result


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() is banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
