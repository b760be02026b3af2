"""Pydantic models for timetable, notice and calendar data.

All data structures use Pydantic v2 for validation and serialization. Field
names are snake_case in Python and camelCase on the wire, matching what the
display layer consumes.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WeekType = Literal["A", "B"]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Period(_WireModel):
    """One scheduled lesson slot for a weekday.

    ``week_type`` of None means the period runs in both A and B weeks.
    """

    period: str = ""  # Label, e.g. "3", "RC", "Period 1"
    time: str = ""  # Display range, e.g. "9:05 - 10:05"
    subject: str = ""
    teacher: str = ""
    room: str = ""
    week_type: WeekType | None = None
    is_substitute: bool = False
    is_room_change: bool = False
    full_teacher: str | None = None
    casual_surname: str | None = None
    original_teacher: str | None = None

    @field_validator("week_type", mode="before")
    @classmethod
    def _normalize_week_type(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip().upper()
        return text or None


WeekTimetable = dict[str, list[Period]]


class BellTime(_WireModel):
    """A bell for one period, e.g. ``BellTime(period="1", time="9:05 - 10:05")``."""

    period: str
    time: str


class Notice(_WireModel):
    """A daily notice from ``dailynews/list.json``."""

    id: str | None = None
    title: str = ""
    content: str = ""
    author: str = ""
    date: str | None = None
    years: list[str] = Field(default_factory=list)


class Variation(_WireModel):
    """A substitute teacher or room change for one class on one day."""

    id: str | None = None
    date: str | None = None
    period: str | None = None
    subject: str | None = None
    original_teacher: str | None = None
    substitute_teacher: str | None = None
    casual: str | None = None
    casual_surname: str | None = None
    substitute_teacher_full: str | None = None
    from_room: str | None = None
    to_room: str | None = None
    reason: str | None = None


class DayInfo(_WireModel):
    """One entry of ``calendar/days.json``: where a date sits in the school cycle."""

    date: str
    term: int | None = None
    week: int | None = None
    week_type: str | None = None
    day_number: int | None = None
    day_name: str | None = None  # e.g. "MonA", "TueB"


class TokenSet(BaseModel):
    """OAuth tokens as returned by the SBHS token endpoint."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int = 3600
    token_type: str = "Bearer"
    obtained_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        return self.obtained_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime | None = None, leeway_seconds: int = 60) -> bool:
        """True when the access token expires within ``leeway_seconds`` of ``now``."""
        now = now or datetime.now(timezone.utc)
        return (self.expires_at.timestamp() - leeway_seconds) <= now.timestamp()
