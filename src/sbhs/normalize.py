"""Normalise SBHS portal JSON into Period, Variation, Notice and DayInfo models.

The portal has served several shapes for the same data over the years
(``daytimetable.json`` with ``periods`` lists, keyed ``days`` mappings, flat
lists tagged with a day field). Every field is therefore read from an
ordered list of candidate names and the first truthy value wins.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from src.sbhs.logging import get_logger
from src.sbhs.models import DayInfo, Notice, Period, Variation, WeekTimetable
from src.sbhs.utils import WEEKDAYS, first_truthy, parse_date, weekday_name
from src.sbhs.weektype import ROTATION_FIELDS

log = get_logger(__name__)

START_FIELDS = ("start", "startTime", "timeStart", "from", "begin", "start_time")
END_FIELDS = ("end", "finish", "timeEnd", "endTime", "end_time", "to", "until")
SUBJECT_FIELDS = ("subject", "subjectName", "subject_name", "class", "title", "name")
TEACHER_FIELDS = ("teacher", "teacherName", "teacher_name", "classTeacher", "staff", "staffName")
ROOM_FIELDS = ("room", "roomName", "room_name", "venue", "location")
PERIOD_FIELDS = ("period", "p", "block", "lesson", "lessonNumber", "lesson_number", "name", "title")
ITEM_DAY_FIELDS = ("day", "dayName", "dayname", "weekday", "week_day", "day_of_week", "date")

# Containers checked in a full timetable payload
MAPPING_CONTAINERS = ("days", "timetable", "week", "data", "schedule")
LIST_CONTAINERS = ("periods", "entries", "lessons", "items", "data", "timetable", "days")
DAY_LIST_FIELDS = ("periods", "entries", "data")
BELL_LIST_FIELDS = ("bells", "periods")


def to_period(item: Mapping[str, Any]) -> Period:
    """Build a Period from one upstream lesson object."""
    start = first_truthy(item, START_FIELDS, "")
    end = first_truthy(item, END_FIELDS, "")
    time = " - ".join(str(part) for part in (start, end) if part)

    week_type = None
    raw_week = first_truthy(item, ROTATION_FIELDS)
    if raw_week is not None and str(raw_week).strip().upper() in ("A", "B"):
        week_type = str(raw_week).strip().upper()

    return Period(
        period=str(first_truthy(item, PERIOD_FIELDS, "")),
        time=time,
        subject=str(first_truthy(item, SUBJECT_FIELDS, "Class")),
        teacher=str(first_truthy(item, TEACHER_FIELDS, "")),
        room=str(first_truthy(item, ROOM_FIELDS, "")),
        week_type=week_type,
    )


def _fallback_day(today: date) -> str:
    name = weekday_name(today)
    return name if name in WEEKDAYS else "Monday"


def resolve_timetable_day(value: Any, today: date) -> str:
    """Bucket key for a day label found in a full timetable payload.

    Accepts a weekday name, text containing one ("Monday A"), an object
    with ``name``/``label``, or a date. Anything else lands on today's
    weekday (Monday at the weekend).
    """
    if isinstance(value, Mapping):
        value = value.get("name") or value.get("label") or ""
    if not value or not isinstance(value, str):
        return _fallback_day(today)

    lower = value.lower()
    for day in WEEKDAYS:
        if day.lower() == lower:
            return day
    for day in WEEKDAYS:
        if day.lower() in lower:
            return day
    parsed = parse_date(value)
    if parsed is not None and weekday_name(parsed) in WEEKDAYS:
        return weekday_name(parsed)
    return _fallback_day(today)


def _periods_from_full(full: Any, today: date) -> WeekTimetable:
    by_day: WeekTimetable = {day: [] for day in WEEKDAYS}

    if isinstance(full, Mapping):
        for container in (full.get(name) for name in MAPPING_CONTAINERS):
            if not isinstance(container, Mapping):
                continue
            for key, value in container.items():
                if isinstance(value, Mapping) and isinstance(value.get("periods"), list):
                    value = value["periods"]
                if isinstance(value, list):
                    by_day[resolve_timetable_day(key, today)] = [
                        to_period(item) for item in value if isinstance(item, Mapping)
                    ]

    lists = [full.get(name) for name in LIST_CONTAINERS] if isinstance(full, Mapping) else [full]
    for container in lists:
        if not isinstance(container, list):
            continue
        for item in container:
            if not isinstance(item, Mapping):
                continue
            day = resolve_timetable_day(first_truthy(item, ITEM_DAY_FIELDS), today)
            by_day.setdefault(day, []).append(to_period(item))

    return by_day


def _periods_from_day(day_json: Any) -> list[Period]:
    if isinstance(day_json, list):
        items = day_json
    elif isinstance(day_json, Mapping):
        items = first_truthy(day_json, DAY_LIST_FIELDS)
        if not isinstance(items, list):
            nested = day_json.get("day")
            items = nested.get("periods") if isinstance(nested, Mapping) else []
        if not isinstance(items, list):
            items = []
    else:
        items = []
    return [to_period(item) for item in items if isinstance(item, Mapping)]


def bell_times(bells_json: Any) -> dict[str, str]:
    """Map period label to a ``start - end`` range from ``bells.json``."""
    if isinstance(bells_json, Mapping):
        bells = first_truthy(bells_json, BELL_LIST_FIELDS, [])
    else:
        bells = bells_json
    if not isinstance(bells, list):
        return {}

    times: dict[str, str] = {}
    for bell in bells:
        if not isinstance(bell, Mapping):
            continue
        label = str(first_truthy(bell, ("period", "name", "title"), "")).strip()
        start = first_truthy(bell, ("start", "timeStart", "from"), "")
        end = first_truthy(bell, ("end", "timeEnd", "to"), "")
        if label and (start or end):
            times[label] = " - ".join(str(part) for part in (start, end) if part)
    return times


def apply_bell_times(week: WeekTimetable, times: Mapping[str, str]) -> WeekTimetable:
    """Fill in ``time`` for periods that do not already carry a range."""
    if not times:
        return {day: list(periods) for day, periods in week.items()}

    result: WeekTimetable = {}
    for day, periods in week.items():
        updated = []
        for p in periods:
            if "-" not in p.time:
                bell = times.get(p.period) or times.get(p.subject)
                if bell:
                    p = p.model_copy(update={"time": bell})
            updated.append(p)
        result[day] = updated
    return result


def build_week_timetable(
    full: Any = None,
    day: Any = None,
    bells: Any = None,
    day_date: date | None = None,
    today: date | None = None,
) -> WeekTimetable:
    """Merge the full, day and bell payloads into Monday..Friday buckets.

    The day timetable replaces the bucket of ``day_date`` (today when not
    given); a weekend date adds a Saturday/Sunday bucket.
    """
    today = today or date.today()
    week = _periods_from_full(full, today) if full is not None else {d: [] for d in WEEKDAYS}

    if day is not None:
        week[weekday_name(day_date or today)] = _periods_from_day(day)

    return apply_bell_times(week, bell_times(bells))


def extract_day_metadata(day_json: Any) -> dict[str, Any] | None:
    """Pull the object describing "today" out of a ``daytimetable.json`` body."""
    if not isinstance(day_json, Mapping):
        return None
    if isinstance(day_json.get("day"), Mapping):
        return dict(day_json["day"])

    inner = day_json.get("timetable")
    if isinstance(inner, Mapping) and isinstance(inner.get("timetable"), Mapping):
        meta = dict(inner["timetable"])
        if day_json.get("date") and "date" not in meta:
            meta["date"] = day_json["date"]
        return meta
    return None


def normalize_variation(obj: Any) -> Variation | None:
    """Normalise one substitution or room change record."""
    if not isinstance(obj, Mapping):
        return None
    casual = obj.get("casual")
    casual_surname = first_truthy(obj, ("casualSurname", "casual_name")) or casual
    if casual_surname:
        full_name = f"{casual} {casual_surname}" if casual and casual != casual_surname else casual_surname
    else:
        full_name = first_truthy(obj, ("substituteFullName", "substituteFull"))

    def text(fields: tuple[str, ...]) -> str | None:
        value = first_truthy(obj, fields)
        return str(value) if value is not None else None

    return Variation(
        id=text(("id", "variationId", "vid")),
        date=text(("date", "day", "when")),
        period=text(("period", "periodName", "t")),
        subject=text(("subject", "class", "title")),
        original_teacher=text(("teacher", "originalTeacher", "teacherName")),
        substitute_teacher=text(
            ("substitute", "replacement", "replacementTeacher", "substituteTeacher", "casual")
        ),
        casual=str(casual) if casual else None,
        casual_surname=str(casual_surname) if casual_surname else None,
        substitute_teacher_full=str(full_name) if full_name else None,
        from_room=text(("fromRoom", "roomFrom", "from", "oldRoom")),
        to_room=text(("toRoom", "roomTo", "to", "room", "newRoom")),
        reason=text(("reason", "note", "comment")),
    )


KNOWN_VARIATION_KEYS = ("variations", "classVariations", "roomVariations")
_VARIATION_KEY_HINTS = ("substitute", "variation", "room", "teacher")


def collect_variations(data: Any, deep: bool = True) -> list[Variation]:
    """Gather every variation-like record in a portal payload.

    Known containers are read first. With ``deep`` the rest of the payload is
    searched for any list of objects whose keys look like variation records;
    leave it off for day timetables, whose period lists match that test too.
    """
    collected: list[Variation] = []

    def push(value: Any) -> None:
        if isinstance(value, Mapping) and not any(key in value for key in ("period", "id")):
            value = list(value.values())
        items = value if isinstance(value, list) else [value]
        for item in items:
            variation = normalize_variation(item)
            if variation is not None:
                collected.append(variation)

    if not isinstance(data, Mapping):
        return collected

    for key in KNOWN_VARIATION_KEYS:
        if isinstance(data.get(key), (list, Mapping)):
            push(data[key])
    if isinstance(data.get("days"), list):
        for day in data["days"]:
            if not isinstance(day, Mapping):
                continue
            for key in KNOWN_VARIATION_KEYS:
                if isinstance(day.get(key), (list, Mapping)):
                    push(day[key])
    timetable = data.get("timetable")
    if isinstance(timetable, Mapping) and isinstance(timetable.get("variations"), list):
        push(timetable["variations"])

    if not deep:
        return collected

    def search(obj: Any) -> None:
        if not isinstance(obj, Mapping):
            return
        for key, value in obj.items():
            if key in KNOWN_VARIATION_KEYS:
                continue
            if isinstance(value, list) and value and isinstance(value[0], Mapping):
                keys = "|".join(value[0].keys()).lower()
                if any(hint in keys for hint in _VARIATION_KEY_HINTS):
                    push(value)
            elif isinstance(value, Mapping):
                search(value)

    search(data)
    return collected


def _squash(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def _variation_days(variation: Variation, days: Iterable[str]) -> list[str]:
    days = list(days)
    if variation.date:
        parsed = parse_date(variation.date)
        if parsed is not None:
            return [weekday_name(parsed)]
        wanted = variation.date.lower()
        found = [d for d in days if wanted in d.lower()]
        if found:
            return found
    return days


def _matches(variation: Variation, period: Period) -> bool:
    if variation.period:
        want, have = _squash(variation.period), _squash(period.period)
        if not (want == have or have.endswith(want) or want.endswith(have)):
            return False
    if variation.subject:
        want, have = _squash(variation.subject), _squash(period.subject)
        if not (want in have or have in want):
            return False
    return True


def apply_substitutions(week: WeekTimetable, variations: Iterable[Variation]) -> WeekTimetable:
    """Apply substitute teachers and room changes to matching periods.

    A variation with a date only touches that weekday; without one it is
    tried against every day. Returns a new timetable.
    """
    result: WeekTimetable = {day: list(periods) for day, periods in week.items()}

    for variation in variations:
        for day in _variation_days(variation, result.keys()):
            if day not in result:
                continue
            for index, period in enumerate(result[day]):
                if not _matches(variation, period):
                    continue
                update: dict[str, Any] = {}
                if variation.substitute_teacher or variation.substitute_teacher_full:
                    display = variation.substitute_teacher_full or variation.substitute_teacher
                    update.update(
                        is_substitute=True,
                        original_teacher=period.original_teacher or period.teacher,
                        full_teacher=display,
                        teacher=display,
                    )
                    if variation.casual_surname:
                        update["casual_surname"] = variation.casual_surname
                new_room = variation.to_room or variation.from_room
                if new_room and new_room != period.room:
                    update.update(is_room_change=True, room=new_room)

                if update:
                    result[day][index] = period.model_copy(update=update)
                    log.debug(
                        "variation_applied",
                        day=day,
                        period=period.period,
                        fields=sorted(update),
                    )
                else:
                    log.debug("variation_matched_without_changes", day=day, period=period.period)
    return result


def normalize_notice(obj: Mapping[str, Any]) -> Notice:
    """Normalise one ``dailynews/list.json`` notice."""
    years = obj.get("years") or obj.get("displayYears") or []
    if isinstance(years, str):
        years = [part.strip() for part in years.split(",") if part.strip()]
    notice_id = first_truthy(obj, ("id", "noticeId"))
    published = first_truthy(obj, ("date", "publishedDate", "dates"))
    return Notice(
        id=str(notice_id) if notice_id is not None else None,
        title=str(first_truthy(obj, ("title", "heading"), "")),
        content=str(first_truthy(obj, ("content", "body", "text"), "")),
        author=str(first_truthy(obj, ("authorName", "author", "staff"), "")),
        date=str(published) if published is not None else None,
        years=[str(year) for year in years],
    )


def normalize_day_info(day_date: str, obj: Mapping[str, Any]) -> DayInfo:
    """Normalise one ``calendar/days.json`` entry keyed by ``day_date``."""

    def as_int(value: Any) -> int | None:
        try:
            return int(value) if value not in (None, "") else None
        except (TypeError, ValueError):
            return None

    def as_text(value: Any) -> str | None:
        return str(value) if value is not None else None

    return DayInfo(
        date=str(obj.get("date") or day_date),
        term=as_int(obj.get("term")),
        week=as_int(obj.get("week")),
        week_type=as_text(first_truthy(obj, ("weekType", "week_type"))),
        day_number=as_int(first_truthy(obj, ("dayNumber", "day_number"))),
        day_name=as_text(first_truthy(obj, ("dayName", "dayname"))),
    )
