"""A/B week resolution and per-day period filtering.

Schools on a two-week bell cycle run some classes only in week A or week B.
The portal reports where "today" sits in the cycle through whichever field
it happens to use that term, so the letter is read from an ordered list of
candidate fields, then from the tail of the day name ("Monday B", "MonA").

Everything here is pure: no I/O, no logging, never raises on bad upstream
data. The only state carried between refreshes is SelectionMemory, which the
caller passes in and gets back.

Data flow for one refresh:
    upstream day -> resolve_week_type -> select_week_type(+ memory)
                 -> resolve_day_key   -> apply_week_filter
"""

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.sbhs.models import WeekTimetable, WeekType
from src.sbhs.utils import first_present, first_truthy, parse_date, weekday_name

# Order matters: the first field that is not None wins.
ROTATION_FIELDS: tuple[str, ...] = (
    "weekType",
    "week_type",
    "week",
    "weekLabel",
    "rotation",
    "cycle",
)
# Day names are read with first_truthy: an empty name moves on to the next field.
DAY_NAME_FIELDS: tuple[str, ...] = ("dayName", "dayname", "day", "title")

# Day-key lookup ignores "title": it is free text, not a weekday label.
DAY_KEY_FIELDS: tuple[str, ...] = ("dayName", "dayname", "day")

# (substring, weekday); checked in order against the lower-cased day name
DAY_NAME_FRAGMENTS: tuple[tuple[str, str], ...] = (
    ("mon", "Monday"),
    ("tue", "Tuesday"),
    ("wed", "Wednesday"),
    ("thu", "Thursday"),
    ("thur", "Thursday"),
    ("fri", "Friday"),
)

# Tie-break when nothing else is known. Kept for compatibility with the web
# app's behaviour; there is no calendar evidence that A is more likely.
DEFAULT_WEEK_TYPE: WeekType = "A"

_TRAILING_LETTER = re.compile(r"([AB])$", re.IGNORECASE)


def _as_letter(value: Any) -> WeekType | None:
    letter = str(value).strip().upper()
    if letter in ("A", "B"):
        return letter  # type: ignore[return-value]
    return None


def resolve_week_type(day: Mapping[str, Any] | None) -> WeekType | None:
    """Infer whether ``day`` falls in week A or week B.

    Tries the rotation fields first, then a trailing A/B on the day name.

    Args:
        day: Upstream day metadata; any string-keyed mapping, or None.

    Returns:
        "A", "B", or None when the metadata carries no usable signal.
    """
    if not day:
        return None
    try:
        raw = first_present(day, ROTATION_FIELDS)
        if raw is not None:
            letter = _as_letter(raw)
            if letter is not None:
                return letter

        name = first_truthy(day, DAY_NAME_FIELDS)
        if name is None:
            return None
        match = _TRAILING_LETTER.search(str(name).strip())
        if match:
            return match.group(1).upper()  # type: ignore[return-value]
    except (AttributeError, TypeError, ValueError):
        return None
    return None


def resolve_day_key(day: Mapping[str, Any] | None) -> str | None:
    """Weekday name ("Monday".."Sunday") that ``day`` describes.

    The ``date`` field is preferred; otherwise the day name is matched by
    substring ("mon", "tue", "wed", "thu"/"thur", "fri"). Weekend names are
    not recognised by substring.
    """
    if not day:
        return None
    try:
        parsed = parse_date(day.get("date"))
        if parsed is not None:
            return weekday_name(parsed)

        raw_name = str(first_truthy(day, DAY_KEY_FIELDS, "")).lower()
        for fragment, weekday in DAY_NAME_FRAGMENTS:
            if fragment in raw_name:
                return weekday
    except (AttributeError, TypeError, ValueError):
        return None
    return None


class SelectionMemory(BaseModel):
    """Last week letter chosen by a refresh; None before the first one."""

    model_config = ConfigDict(frozen=True)

    last_week_type: WeekType | None = None


def select_week_type(
    current: str | None,
    external_week_type: str | None,
    memory: SelectionMemory,
) -> tuple[WeekType, SelectionMemory]:
    """Choose the active week letter for this refresh.

    Precedence: explicit user choice, then the resolved upstream letter,
    then the remembered letter (only when upstream gave nothing at all),
    then DEFAULT_WEEK_TYPE.

    Args:
        current: User override, used only when exactly "A" or "B".
        external_week_type: Output of resolve_week_type for the day.
        memory: Memory returned by the previous refresh.

    Returns:
        (letter, memory for the next refresh). The new memory always holds
        the returned letter, defaults included.
    """
    if current in ("A", "B"):
        selected = current
    elif external_week_type in ("A", "B"):
        selected = external_week_type
    elif external_week_type is None and memory.last_week_type is not None:
        selected = memory.last_week_type
    else:
        selected = DEFAULT_WEEK_TYPE
    return selected, SelectionMemory(last_week_type=selected)  # type: ignore[return-value]


def apply_week_filter(
    week: WeekTimetable,
    week_type: str | None,
    day_key: str | None,
) -> WeekTimetable:
    """Drop the other week's periods from one weekday.

    Periods without a week type are always kept. Weekdays other than
    ``day_key`` pass through untouched. When ``week_type`` is not A/B, or
    ``day_key`` is None or missing from ``week``, nothing is filtered.

    Unlike the override in select_week_type, ``week_type`` is trimmed and
    upper-cased here, so " b " filters as "B".

    The input mapping and its lists are never mutated; a new mapping with
    new lists is returned.
    """
    result: WeekTimetable = {day: list(periods) for day, periods in week.items()}
    letter = _as_letter(week_type) if week_type is not None else None
    if letter is None or day_key is None or day_key not in result:
        return result

    result[day_key] = [
        p
        for p in result[day_key]
        if p.week_type is None or p.week_type.upper() == letter
    ]
    return result
