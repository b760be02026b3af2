"""Timetable refresh pipeline.

fetch_timetable_payload() does the network part: day, full and bell
timetables from SBHS, normalised into a TimetablePayload.
refresh_timetable() is the pure part: works out the active A/B week,
applies the day's substitutions and drops the other week's periods.

A caller refreshing repeatedly threads SelectionMemory through:

    memory = SelectionMemory()
    while True:
        payload = fetch_timetable_payload(client)
        result = refresh_timetable(payload, memory)
        memory = result.memory

Refreshes that overlap must be serialised by the caller; whichever result
is kept last decides the memory.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.sbhs.client import SbhsClient
from src.sbhs.errors import AuthenticationError, PermanentError, SbhsError
from src.sbhs.logging import get_logger
from src.sbhs.models import Variation, WeekTimetable, WeekType
from src.sbhs.normalize import (
    apply_substitutions,
    build_week_timetable,
    collect_variations,
    extract_day_metadata,
)
from src.sbhs.utils import parse_date
from src.sbhs.weektype import (
    SelectionMemory,
    apply_week_filter,
    resolve_day_key,
    resolve_week_type,
    select_week_type,
)

log = get_logger(__name__)


class TimetablePayload(BaseModel):
    """Normalised result of one upstream fetch."""

    model_config = ConfigDict(frozen=True)

    timetable: WeekTimetable
    upstream_day: dict[str, Any] | None = None
    variations: list[Variation] = Field(default_factory=list)
    source: str = "sbhs-api"
    date: str | None = None


class RefreshResult(BaseModel):
    """What the display layer renders after one refresh."""

    model_config = ConfigDict(frozen=True)

    timetable: WeekTimetable
    week_type: WeekType
    inferred_week_type: WeekType | None = None
    day_key: str | None = None
    memory: SelectionMemory


def _optional(fetch, name: str) -> Any:
    """Call an endpoint whose failure should not sink the whole refresh."""
    try:
        return fetch()
    except AuthenticationError:
        raise
    except SbhsError as e:
        log.warning("optional_endpoint_failed", endpoint=name, error=str(e))
        return None


def fetch_timetable_payload(
    client: SbhsClient, day: str | None = None, today: date | None = None
) -> TimetablePayload:
    """Fetch and normalise the timetable for ``day`` (YYYY-MM-DD, default today).

    The day timetable is required; the full timetable and bells only
    enrich it.

    Raises:
        AuthenticationError: Token rejected by SBHS.
        PermanentError: SBHS returned no periods at all.
    """
    day_json = client.day_timetable(day)
    full_json = _optional(client.timetable, "timetable")
    bells_json = _optional(lambda: client.bells(day), "bells")

    week = build_week_timetable(
        full=full_json,
        day=day_json,
        bells=bells_json,
        day_date=parse_date(day),
        today=today,
    )
    if not any(week.values()):
        raise PermanentError("No timetable data available from SBHS API")

    variations = collect_variations(day_json, deep=False)
    log.info(
        "timetable_fetched",
        date=day,
        periods=sum(len(periods) for periods in week.values()),
        variations=len(variations),
        has_full=full_json is not None,
        has_bells=bells_json is not None,
    )
    return TimetablePayload(
        timetable=week,
        upstream_day=extract_day_metadata(day_json),
        variations=variations,
        date=day,
    )


def refresh_timetable(
    payload: TimetablePayload,
    memory: SelectionMemory,
    override: str | None = None,
) -> RefreshResult:
    """Select the active week for ``payload`` and filter the day it describes.

    Args:
        payload: Output of fetch_timetable_payload.
        memory: Memory from the previous refresh (SelectionMemory() at start).
        override: User-chosen week letter from settings, if any.

    Returns:
        RefreshResult; pass ``result.memory`` to the next refresh.
    """
    inferred = resolve_week_type(payload.upstream_day)
    week_type, memory = select_week_type(override, inferred, memory)
    day_key = resolve_day_key(payload.upstream_day)

    week = payload.timetable
    if payload.variations and day_key is not None:
        day_only = [v.model_copy(update={"date": v.date or day_key}) for v in payload.variations]
        week = apply_substitutions(week, day_only)
    week = apply_week_filter(week, week_type, day_key)

    log.info(
        "week_type_selected",
        week_type=week_type,
        inferred=inferred,
        override=override,
        day=day_key,
    )
    return RefreshResult(
        timetable=week,
        week_type=week_type,
        inferred_week_type=inferred,
        day_key=day_key,
        memory=memory,
    )
