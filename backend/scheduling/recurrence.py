"""
Recurring session generation from a weekly schedule.

Why:
    Scheduled group courses meet on fixed weekdays at a fixed time of day.
    Instructors describe that rule once; this module turns it into concrete,
    numbered session instants that the sessions service persists.

Behavior:
    - Walk forward one calendar day at a time from the start date and emit a
      session for every day whose English weekday name is selected.
    - Bounded schedules (has_end_date + end_date) stop once the walked date
      passes the end date, capped at MAX_BOUNDED_SESSIONS.
    - Open-ended schedules stop after a small batch (OPEN_ENDED_BATCH_SIZE);
      later batches resume the day after the latest existing session.
    - Numbering continues across batches ("Session N Topics").

The functions are pure and framework-free; callers pass dates explicitly.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
OPEN_ENDED_BATCH_SIZE = 5
MAX_BOUNDED_SESSIONS = 1000
SESSION_TITLE_TEMPLATE = "Session {number} Topics"

_TITLE_NUMBER_RE = re.compile(r"^Session (\d+) Topics$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_CANONICAL = {name.lower(): name for name in WEEKDAY_NAMES}


def normalize_weekday(name: object) -> str:
    """Map a weekday name to its canonical English spelling ("monday " -> "Monday")."""
    if not isinstance(name, str):
        raise ValueError("invalid_weekday")
    canonical = _CANONICAL.get(name.strip().lower())
    if canonical is None:
        raise ValueError("invalid_weekday")
    return canonical


def normalize_weekdays(names: Optional[Iterable[object]]) -> frozenset[str]:
    if names is None:
        return frozenset()
    if isinstance(names, str):
        raise ValueError("invalid_weekday")
    return frozenset(normalize_weekday(n) for n in names)


def parse_session_time(value: object) -> time:
    """Parse "HH:MM" (optionally "HH:MM:SS") into a time-of-day."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError("invalid_session_time")
    m = _TIME_RE.match(value.strip())
    if not m:
        raise ValueError("invalid_session_time")
    hours, minutes = int(m.group(1)), int(m.group(2))
    seconds = int(m.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValueError("invalid_session_time")
    return time(hours, minutes, seconds)


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


@dataclass(frozen=True)
class WeeklySchedule:
    start_date: date
    end_date: Optional[date]
    has_end_date: bool
    selected_days: frozenset[str]
    session_time: time
    duration_minutes: int
    meeting_link: Optional[str] = None

    @property
    def is_bounded(self) -> bool:
        return bool(self.has_end_date and self.end_date is not None)


@dataclass(frozen=True)
class PlannedSession:
    number: int
    starts_at: datetime
    duration_minutes: int
    meeting_link: Optional[str] = None

    @property
    def title(self) -> str:
        return SESSION_TITLE_TEMPLATE.format(number=self.number)

    def to_record(self, course_id: str) -> dict:
        return {
            "course_id": course_id,
            "title": self.title,
            "description": "",
            "session_date": self.starts_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "meeting_link": self.meeting_link or "",
            "status": "scheduled",
        }


def _as_date(value: object, *, code: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValueError(code) from exc
    raise ValueError(code)


def build_schedule(
    *,
    start_date: object,
    selected_days: Optional[Iterable[object]],
    session_time: object,
    duration_minutes: object,
    end_date: object = None,
    has_end_date: bool = False,
    meeting_link: Optional[str] = None,
) -> WeeklySchedule:
    """Validate raw schedule fields and return a WeeklySchedule.

    Raises:
        ValueError with a stable code (invalid_start_date, invalid_end_date,
        invalid_weekday, invalid_session_time, invalid_duration).
    """
    start = _as_date(start_date, code="invalid_start_date")
    end = None
    if end_date not in (None, ""):
        end = _as_date(end_date, code="invalid_end_date")
    if isinstance(duration_minutes, bool):
        raise ValueError("invalid_duration")
    try:
        duration = int(duration_minutes)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError("invalid_duration") from exc
    if duration <= 0:
        raise ValueError("invalid_duration")
    return WeeklySchedule(
        start_date=start,
        end_date=end,
        has_end_date=bool(has_end_date),
        selected_days=normalize_weekdays(selected_days),
        session_time=parse_session_time(session_time),
        duration_minutes=duration,
        meeting_link=meeting_link or None,
    )


def generate_sessions(
    schedule: WeeklySchedule,
    *,
    first_number: int = 1,
    start_from: Optional[date] = None,
    batch_size: int = OPEN_ENDED_BATCH_SIZE,
) -> List[PlannedSession]:
    """Expand a weekly schedule into ordered session instants.

    Parameters:
        schedule: validated weekly rule.
        first_number: number assigned to the first emitted session.
        start_from: walk start; defaults to the schedule start date. A later
            value is used by "generate more" batches.
        batch_size: number of sessions emitted for open-ended schedules.

    Behavior:
        Bounded schedules ignore batch_size and run to the end date (capped
        at MAX_BOUNDED_SESSIONS). Empty selected_days yields an empty list.
    """
    if not schedule.selected_days:
        return []
    current = start_from or schedule.start_date
    if current < schedule.start_date:
        current = schedule.start_date
    if schedule.is_bounded:
        limit = MAX_BOUNDED_SESSIONS
        last_day = schedule.end_date
    else:
        limit = max(0, int(batch_size))
        # Every valid weekday occurs once per week, so this window always
        # holds `limit` matches.
        last_day = current + timedelta(days=7 * (limit + 1))
    out: List[PlannedSession] = []
    number = first_number
    while len(out) < limit and current <= last_day:  # type: ignore[operator]
        if weekday_name(current) in schedule.selected_days:
            out.append(
                PlannedSession(
                    number=number,
                    starts_at=datetime.combine(current, schedule.session_time),
                    duration_minutes=schedule.duration_minutes,
                    meeting_link=schedule.meeting_link,
                )
            )
            number += 1
        current += timedelta(days=1)
    return out


def next_batch_start(latest_session_at: object) -> date:
    """Return the day after the latest existing session."""
    if isinstance(latest_session_at, str):
        try:
            latest = datetime.fromisoformat(latest_session_at.strip().replace("Z", "+00:00")).date()
        except ValueError as exc:
            raise ValueError("invalid_session_date") from exc
    else:
        latest = _as_date(latest_session_at, code="invalid_session_date")
    return latest + timedelta(days=1)


def next_session_number(existing_titles: Iterable[Optional[str]], existing_count: int = 0) -> int:
    """Continue numbering after the highest "Session N Topics" title.

    Falls back to the number of existing sessions when no numbered title is
    left (e.g. instructors renamed every session).
    """
    highest = max(0, int(existing_count))
    for title in existing_titles:
        m = _TITLE_NUMBER_RE.match((title or "").strip())
        if m:
            highest = max(highest, int(m.group(1)))
    return highest + 1


__all__ = [
    "WEEKDAY_NAMES",
    "OPEN_ENDED_BATCH_SIZE",
    "MAX_BOUNDED_SESSIONS",
    "WeeklySchedule",
    "PlannedSession",
    "normalize_weekday",
    "normalize_weekdays",
    "parse_session_time",
    "weekday_name",
    "build_schedule",
    "generate_sessions",
    "next_batch_start",
    "next_session_number",
]
