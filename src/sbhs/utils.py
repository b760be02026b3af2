"""Lookup helpers for the loosely-shaped JSON the SBHS portal returns."""

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

WEEKDAYS: tuple[str, ...] = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
_DAY_NAMES = WEEKDAYS + ("Saturday", "Sunday")


def first_present(data: Mapping[str, Any], fields: Sequence[str]) -> Any:
    """Return the value of the first field in ``fields`` that is not None.

    An empty string still counts as present and stops the lookup.
    """
    for field in fields:
        value = data.get(field)
        if value is not None:
            return value
    return None


def first_truthy(data: Mapping[str, Any], fields: Sequence[str], default: Any = None) -> Any:
    """Return the value of the first field in ``fields`` that is truthy."""
    for field in fields:
        value = data.get(field)
        if value:
            return value
    return default


def parse_date(value: Any) -> date | None:
    """Parse an upstream date such as ``2025-03-10``, ``2025/03/10`` or an ISO timestamp.

    Returns None for anything that does not parse.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().replace("/", "-")
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def weekday_name(day: date) -> str:
    """English weekday name, e.g. ``Monday``, independent of the process locale."""
    return _DAY_NAMES[day.weekday()]
