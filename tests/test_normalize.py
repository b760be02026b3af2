from datetime import date

from src.sbhs.models import Period, Variation
from src.sbhs.normalize import (
    apply_substitutions,
    bell_times,
    build_week_timetable,
    collect_variations,
    extract_day_metadata,
    normalize_day_info,
    normalize_notice,
    normalize_variation,
    resolve_timetable_day,
    to_period,
)

# 2025-03-12 is a Wednesday, 2025-03-15 a Saturday
WEDNESDAY = date(2025, 3, 12)
SATURDAY = date(2025, 3, 15)


def test_to_period_reads_alternate_field_names():
    period = to_period(
        {
            "lessonNumber": 4,
            "startTime": "11:25",
            "finish": "12:25",
            "subjectName": "Chemistry",
            "staffName": "Ms Smith",
            "venue": "S02",
            "week_type": "b",
        }
    )
    assert period == Period(
        period="4",
        time="11:25 - 12:25",
        subject="Chemistry",
        teacher="Ms Smith",
        room="S02",
        week_type="B",
    )


def test_to_period_defaults():
    period = to_period({"start": "9:05"})
    assert period.subject == "Class"
    assert period.time == "9:05"
    assert period.period == ""
    assert period.week_type is None


def test_to_period_ignores_numeric_week():
    assert to_period({"period": "1", "week": 6}).week_type is None


def test_resolve_timetable_day():
    assert resolve_timetable_day("tuesday", WEDNESDAY) == "Tuesday"
    assert resolve_timetable_day("Thursday B", WEDNESDAY) == "Thursday"
    assert resolve_timetable_day({"name": "Friday"}, WEDNESDAY) == "Friday"
    assert resolve_timetable_day("2025-03-10", WEDNESDAY) == "Monday"
    assert resolve_timetable_day("7", WEDNESDAY) == "Wednesday"
    assert resolve_timetable_day(None, SATURDAY) == "Monday"


def test_build_from_keyed_days_and_flat_list():
    full = {
        "days": {
            "Monday": [{"period": "1", "subject": "English"}],
            "Tuesday": {"periods": [{"period": "1", "subject": "Art"}]},
        },
        "entries": [{"day": "Friday", "period": "2", "subject": "PE"}],
    }
    week = build_week_timetable(full=full, today=WEDNESDAY)
    assert list(week) == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    assert [p.subject for p in week["Monday"]] == ["English"]
    assert [p.subject for p in week["Tuesday"]] == ["Art"]
    assert [p.subject for p in week["Friday"]] == ["PE"]
    assert week["Wednesday"] == []


def test_day_timetable_replaces_its_weekday():
    full = {"days": {"Wednesday": [{"period": "1", "subject": "Old"}]}}
    day = {"periods": [{"period": "1", "subject": "New"}]}
    week = build_week_timetable(full=full, day=day, day_date=WEDNESDAY, today=SATURDAY)
    assert [p.subject for p in week["Wednesday"]] == ["New"]


def test_day_timetable_defaults_to_today():
    week = build_week_timetable(day=[{"period": "1"}], today=WEDNESDAY)
    assert len(week["Wednesday"]) == 1


def test_day_timetable_nested_periods():
    day = {"day": {"periods": [{"period": "RC"}]}}
    week = build_week_timetable(day=day, day_date=WEDNESDAY)
    assert [p.period for p in week["Wednesday"]] == ["RC"]


def test_bells_fill_missing_times_only():
    bells = {"bells": [{"period": "1", "start": "9:05", "end": "10:05"}, {"name": "Lunch", "from": "12:25"}]}
    assert bell_times(bells) == {"1": "9:05 - 10:05", "Lunch": "12:25"}

    day = [
        {"period": "1", "subject": "English"},
        {"period": "2", "subject": "Maths", "start": "10:10", "end": "11:10"},
        {"period": "L", "subject": "Lunch"},
    ]
    week = build_week_timetable(day=day, bells=bells, day_date=WEDNESDAY)
    assert [p.time for p in week["Wednesday"]] == ["9:05 - 10:05", "10:10 - 11:10", "12:25"]


def test_extract_day_metadata_shapes():
    assert extract_day_metadata({"day": {"dayName": "MonA"}}) == {"dayName": "MonA"}
    nested = {"date": "2025-03-10", "timetable": {"timetable": {"dayname": "Monday B"}}}
    assert extract_day_metadata(nested) == {"dayname": "Monday B", "date": "2025-03-10"}
    assert extract_day_metadata({"periods": []}) is None
    assert extract_day_metadata([]) is None


def test_normalize_variation_casual_names():
    variation = normalize_variation(
        {"period": "3", "subject": "Maths", "teacher": "MRJ", "casual": "K", "casualSurname": "Lee", "toRoom": "101"}
    )
    assert variation.substitute_teacher == "K"
    assert variation.substitute_teacher_full == "K Lee"
    assert variation.casual_surname == "Lee"
    assert variation.to_room == "101"
    assert normalize_variation("nope") is None


def test_collect_variations_from_known_and_nested_containers():
    data = {
        "classVariations": [{"period": "1", "casual": "AB"}],
        "roomVariations": {"2": {"period": "2", "roomTo": "B4"}},
        "extra": {"list": [{"period": "5", "substitute": "ZZ"}]},
    }
    assert [v.period for v in collect_variations(data)] == ["1", "2", "5"]
    assert [v.period for v in collect_variations(data, deep=False)] == ["1", "2"]
    assert collect_variations(None) == []


def test_apply_substitutions_marks_teacher_and_room():
    week = {
        "Monday": [
            Period(period="Period 3", subject="Maths 10A", teacher="MRJ", room="201"),
            Period(period="4", subject="English", teacher="MSX", room="105"),
        ]
    }
    variations = [
        Variation(date="Monday", period="3", subject="maths", substitute_teacher="K", substitute_teacher_full="K Lee"),
        Variation(date="Monday", period="4", to_room="106"),
    ]
    result = apply_substitutions(week, variations)

    maths, english = result["Monday"]
    assert maths.is_substitute
    assert maths.teacher == "K Lee"
    assert maths.original_teacher == "MRJ"
    assert english.is_room_change
    assert english.room == "106"
    assert week["Monday"][0].teacher == "MRJ"


def test_apply_substitutions_respects_date():
    week = {"Monday": [Period(period="1", room="A")], "Tuesday": [Period(period="1", room="A")]}
    result = apply_substitutions(week, [Variation(date="2025-03-11", period="1", to_room="B")])
    assert result["Monday"][0].room == "A"
    assert result["Tuesday"][0].room == "B"


def test_normalize_notice():
    notice = normalize_notice({"id": 12, "title": "Chess", "content": "<p>Club</p>", "authorName": "Mr P", "years": "7, 8"})
    assert notice.id == "12"
    assert notice.years == ["7", "8"]
    assert notice.author == "Mr P"


def test_normalize_day_info():
    info = normalize_day_info("2025-03-10", {"term": "1", "week": "7", "weekType": "B", "dayNumber": 6, "dayName": "MonB"})
    assert info.date == "2025-03-10"
    assert (info.term, info.week, info.week_type, info.day_number, info.day_name) == (1, 7, "B", 6, "MonB")
