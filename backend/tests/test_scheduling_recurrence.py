"""
Weekly recurrence expansion: day walking, batching and numbering.
"""
from __future__ import annotations

from datetime import date, datetime, time
from itertools import combinations

import pytest

from scheduling.recurrence import (
    OPEN_ENDED_BATCH_SIZE,
    WEEKDAY_NAMES,
    build_schedule,
    generate_sessions,
    next_batch_start,
    next_session_number,
    normalize_weekday,
    parse_session_time,
)


def _schedule(**overrides):
    fields = {
        "start_date": "2024-06-03",  # a Monday
        "selected_days": ["Monday", "Wednesday"],
        "session_time": "16:30",
        "duration_minutes": 60,
    }
    fields.update(overrides)
    return build_schedule(**fields)


def test_open_ended_schedule_emits_one_batch():
    sessions = generate_sessions(_schedule())
    assert len(sessions) == OPEN_ENDED_BATCH_SIZE
    assert [s.starts_at.date() for s in sessions] == [
        date(2024, 6, 3),
        date(2024, 6, 5),
        date(2024, 6, 10),
        date(2024, 6, 12),
        date(2024, 6, 17),
    ]
    assert all(s.starts_at.time() == time(16, 30) for s in sessions)
    assert [s.title for s in sessions] == [f"Session {n} Topics" for n in range(1, 6)]


def test_bounded_schedule_stops_at_end_date():
    sessions = generate_sessions(_schedule(has_end_date=True, end_date="2024-06-12"))
    assert [s.starts_at.date().isoformat() for s in sessions] == [
        "2024-06-03",
        "2024-06-05",
        "2024-06-10",
        "2024-06-12",
    ]


def test_one_week_bounded_span_matches_selected_day_count():
    for size in range(1, len(WEEKDAY_NAMES) + 1):
        for days in combinations(WEEKDAY_NAMES, size):
            schedule = _schedule(selected_days=list(days), has_end_date=True, end_date="2024-06-09")
            sessions = generate_sessions(schedule)
            assert len(sessions) == len(days), days
            assert {s.starts_at.strftime("%A") for s in sessions} == set(days)


@pytest.mark.parametrize("days", [["Sunday"], ["Saturday"], ["Monday"]])
def test_single_weekday_open_ended_still_emits_full_batch(days):
    sessions = generate_sessions(_schedule(selected_days=days))
    assert len(sessions) == OPEN_ENDED_BATCH_SIZE
    gaps = {(b.starts_at - a.starts_at).days for a, b in zip(sessions, sessions[1:])}
    assert gaps == {7}


def test_end_date_before_start_date_yields_nothing():
    schedule = _schedule(has_end_date=True, end_date="2024-06-02")
    assert schedule.is_bounded
    assert generate_sessions(schedule) == []


def test_end_date_is_ignored_without_flag():
    schedule = _schedule(has_end_date=False, end_date="2024-06-05")
    assert not schedule.is_bounded
    assert len(generate_sessions(schedule)) == OPEN_ENDED_BATCH_SIZE


def test_empty_selection_yields_nothing():
    assert generate_sessions(_schedule(selected_days=[])) == []


def test_weekday_names_are_normalized():
    schedule = _schedule(selected_days=[" monday", "FRIDAY"])
    assert schedule.selected_days == frozenset({"Monday", "Friday"})
    assert normalize_weekday("sunday ") == "Sunday"
    with pytest.raises(ValueError) as exc:
        normalize_weekday("Funday")
    assert str(exc.value) == "invalid_weekday"


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"start_date": "next week"}, "invalid_start_date"),
        ({"end_date": "2024-13-40", "has_end_date": True}, "invalid_end_date"),
        ({"session_time": "25:00"}, "invalid_session_time"),
        ({"duration_minutes": 0}, "invalid_duration"),
        ({"duration_minutes": True}, "invalid_duration"),
        ({"selected_days": "Monday"}, "invalid_weekday"),
    ],
)
def test_build_schedule_rejects_bad_fields(overrides, code):
    with pytest.raises(ValueError) as exc:
        _schedule(**overrides)
    assert str(exc.value) == code


def test_parse_session_time_accepts_seconds():
    assert parse_session_time("09:05:30") == time(9, 5, 30)
    assert parse_session_time(time(8, 0)) == time(8, 0)


def test_follow_up_batch_continues_numbering_and_dates():
    schedule = _schedule()
    first = generate_sessions(schedule)
    resume = next_batch_start(first[-1].starts_at.isoformat())
    assert resume == date(2024, 6, 18)
    number = next_session_number([s.title for s in first], len(first))
    assert number == 6
    more = generate_sessions(schedule, first_number=number, start_from=resume, batch_size=3)
    assert [s.title for s in more] == ["Session 6 Topics", "Session 7 Topics", "Session 8 Topics"]
    assert [s.starts_at.date() for s in more] == [date(2024, 6, 19), date(2024, 6, 24), date(2024, 6, 26)]


def test_next_session_number_falls_back_to_count():
    assert next_session_number(["Intro", "Recap"], 2) == 3
    assert next_session_number(["Session 9 Topics", None], 2) == 10
    assert next_session_number([], 0) == 1


def test_next_batch_start_accepts_dates_and_rejects_garbage():
    assert next_batch_start(datetime(2024, 6, 30, 10, 0)) == date(2024, 7, 1)
    with pytest.raises(ValueError):
        next_batch_start("not-a-date")


def test_planned_session_record_shape():
    planned = generate_sessions(_schedule(meeting_link="https://meet.example.org/x"))[0]
    record = planned.to_record("course-1")
    assert record == {
        "course_id": "course-1",
        "title": "Session 1 Topics",
        "description": "",
        "session_date": "2024-06-03T16:30:00",
        "duration_minutes": 60,
        "meeting_link": "https://meet.example.org/x",
        "status": "scheduled",
    }
