"""
Course timeline helpers for catalog and detail views.

Why:
    Marketplace cards and course pages show "12 sessions over 6 weeks",
    "Starts June 3, 2024" or "Full" without loading every session row. These
    helpers derive that from the schedule fields stored on the course record.

Behavior:
    - All functions accept plain course dicts as returned by the record store.
    - Time-dependent helpers take an explicit `now` for deterministic tests.
    - Open-ended courses use a 12-week horizon for estimates.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional

from .recurrence import normalize_weekday, parse_session_time, weekday_name

DEFAULT_HORIZON = timedelta(weeks=12)
TOTAL_SESSIONS_CAP = 100

_FREQUENCY_STEP_DAYS = {"weekly": 1, "biweekly": 7, "monthly": 30}


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _selected_days(course: Mapping[str, Any]) -> set[str]:
    out: set[str] = set()
    for name in course.get("selected_days") or []:
        try:
            out.add(normalize_weekday(name))
        except ValueError:
            continue
    return out


def _end_date(course: Mapping[str, Any], start: date) -> date:
    end = _parse_date(course.get("end_date")) if course.get("has_end_date") else None
    return end or (start + DEFAULT_HORIZON)


def _scheduled_start(course: Optional[Mapping[str, Any]]) -> Optional[date]:
    """Start date of a course with a fixed weekly schedule, else None."""
    if not course or course.get("is_self_paced") or not _selected_days(course):
        return None
    return _parse_date(course.get("start_date"))


def calculate_total_sessions(course: Optional[Mapping[str, Any]]) -> int:
    """Estimate the number of sessions from the schedule fields."""
    start = _scheduled_start(course)
    if course is None or start is None:
        return 0
    end = _end_date(course, start)
    days = _selected_days(course)
    step = timedelta(days=_FREQUENCY_STEP_DAYS.get(course.get("frequency") or "weekly", 1))
    count = 0
    current = start
    while current <= end and count < TOTAL_SESSIONS_CAP:
        if weekday_name(current) in days:
            count += 1
        current += step
    return count


def course_duration_weeks(course: Optional[Mapping[str, Any]]) -> int:
    if not course or course.get("is_self_paced"):
        return 0
    start = _parse_date(course.get("start_date"))
    if start is None:
        return 0
    end = _end_date(course, start)
    diff_days = abs((end - start).days)
    return -(-diff_days // 7)


def _first_session_date(course: Mapping[str, Any], start: date) -> date:
    days = _selected_days(course)
    for offset in range(7):
        candidate = start + timedelta(days=offset)
        if weekday_name(candidate) in days:
            return candidate
    return start


def next_session_date(course: Optional[Mapping[str, Any]], now: datetime) -> Optional[date]:
    """Return the next calendar day with a session, or None when finished."""
    start = _scheduled_start(course)
    if course is None or start is None:
        return None
    today = now.date()
    if today < start:
        return _first_session_date(course, start)
    if today > _end_date(course, start):
        return None
    days = _selected_days(course)
    for offset in range(14):
        candidate = today + timedelta(days=offset)
        if weekday_name(candidate) in days:
            return candidate
    return None


def is_course_active(course: Optional[Mapping[str, Any]], now: datetime) -> bool:
    if not course or course.get("is_self_paced"):
        return True
    start = _parse_date(course.get("start_date"))
    if start is None:
        return False
    return start <= now.date() <= _end_date(course, start)


def course_status_text(course: Optional[Mapping[str, Any]], now: datetime) -> str:
    if not course:
        return "Unknown"
    if course.get("is_self_paced"):
        return "Self-paced"
    start = _parse_date(course.get("start_date"))
    if start is None:
        return "Schedule pending"
    if now.date() < start:
        return f"Starts {_format_date(start)}"
    end = _parse_date(course.get("end_date")) if course.get("has_end_date") else None
    if end is not None and now.date() > end:
        return "Completed"
    return "In progress"


def is_enrollment_open(course: Optional[Mapping[str, Any]], enrolled: int, now: datetime) -> bool:
    """Published, below the enrollment limit and not started yet."""
    if not course or not course.get("is_published"):
        return False
    limit = course.get("enrollment_limit")
    if limit and enrolled >= int(limit):
        return False
    start = _parse_date(course.get("start_date"))
    if start is not None and now.date() > start:
        return False
    return True


def enrollment_status_text(course: Optional[Mapping[str, Any]], enrolled: int, now: datetime) -> str:
    if not course:
        return "Not available"
    if not course.get("is_published"):
        return "Not published"
    if is_enrollment_open(course, enrolled, now):
        return "Open"
    limit = course.get("enrollment_limit")
    if limit and enrolled >= int(limit):
        return "Full"
    start = _parse_date(course.get("start_date"))
    if start is not None and now.date() > start:
        return "Started"
    return "Closed"


def _format_date(value: date) -> str:
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def _format_time(value: Any) -> str:
    try:
        t = parse_session_time(value)
    except ValueError:
        return str(value) if value else "Time TBD"
    hour = t.hour % 12 or 12
    suffix = "AM" if t.hour < 12 else "PM"
    return f"{hour}:{t.minute:02d} {suffix}"


def format_schedule(course: Optional[Mapping[str, Any]]) -> str:
    if not course:
        return "Schedule not available"
    if course.get("is_self_paced"):
        return "Self-paced learning"
    days = course.get("selected_days") or []
    if not days or not course.get("session_time"):
        return "Schedule to be announced"
    frequency = course.get("frequency") or "weekly"
    suffix = "" if frequency == "weekly" else f" ({frequency})"
    return f"{', '.join(days)} at {_format_time(course.get('session_time'))}{suffix}"


def build_timeline(course: Optional[Mapping[str, Any]]) -> Optional[dict]:
    """Summarize the schedule for display (type, totals, schedule text)."""
    if not course:
        return None
    if course.get("is_self_paced"):
        return {
            "type": "self-paced",
            "message": "Learn at your own pace",
            "total_sessions": 0,
            "duration": "Flexible",
            "schedule": "No fixed schedule",
        }
    start = _scheduled_start(course)
    if start is None:
        return {
            "type": "no-schedule",
            "message": "Schedule to be announced",
            "total_sessions": 0,
            "duration": "TBD",
            "schedule": "Schedule pending",
        }
    end = _parse_date(course.get("end_date")) if course.get("has_end_date") else None
    duration = course.get("session_duration")
    return {
        "type": "scheduled",
        "total_sessions": calculate_total_sessions(course),
        "duration": f"{course_duration_weeks(course)} weeks",
        "start_date": _format_date(start),
        "end_date": _format_date(end) if end else "Open-ended",
        "schedule": format_schedule(course),
        "session_duration": f"{duration} minutes" if duration else "Duration TBD",
        "days_of_week": list(course.get("selected_days") or []),
        "session_time": course.get("session_time"),
        "frequency": course.get("frequency") or "weekly",
    }


__all__ = [
    "calculate_total_sessions",
    "course_duration_weeks",
    "next_session_date",
    "is_course_active",
    "course_status_text",
    "is_enrollment_open",
    "enrollment_status_text",
    "format_schedule",
    "build_timeline",
]
