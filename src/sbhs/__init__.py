"""SBHS student portal client with A/B week timetable selection.

Wraps the Sydney Boys High School student portal API (OAuth login, day and
full timetables, bells, notices, calendar) and picks the periods that apply
today from a two-week A/B timetable cycle.
"""

from src.sbhs.models import Period, WeekTimetable
from src.sbhs.timetable import fetch_timetable_payload, refresh_timetable
from src.sbhs.weektype import (
    SelectionMemory,
    apply_week_filter,
    resolve_day_key,
    resolve_week_type,
    select_week_type,
)

__all__ = [
    "Period",
    "WeekTimetable",
    "SelectionMemory",
    "resolve_week_type",
    "resolve_day_key",
    "select_week_type",
    "apply_week_filter",
    "fetch_timetable_payload",
    "refresh_timetable",
]
