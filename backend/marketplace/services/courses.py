"""Courses service layer.

Why:
    Encapsulates course use cases (create/list/get/update/publish/delete) so
    that web adapters stay thin and validation is unit-testable without
    FastAPI.

Behavior:
    - New courses are published immediately.
    - Scheduled group courses get their initial session batch on creation.
    - Read operations flatten joined relations into view fields
      (instructor_name, current_enrollment, total_sessions, ratings) and attach
      the computed timeline.
    - Deletion is refused while any non-dropped enrollment exists. The check
      and the delete are separate round trips; a concurrent enrollment can
      still slip in between.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from records.ports import Expand, RecordStore, embedded_count, eq, in_, neq
from scheduling import timeline
from scheduling.recurrence import WEEKDAY_NAMES, normalize_weekdays, parse_session_time

from ..authz import require_course_owner
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from .base import guarded, optional_url, positive_int, require_text, round_half_up, utcnow
from .profiles import display_name
from .sessions import SessionsService, is_scheduled_group_course

COURSE_TYPES = ("group", "one_on_one")
FREQUENCIES = ("weekly", "biweekly", "monthly")
DEFAULT_TIMEZONE = "America/New_York"

_UPDATABLE = (
    "title",
    "description",
    "category",
    "course_type",
    "session_duration",
    "enrollment_limit",
    "is_self_paced",
    "meeting_link",
    "timezone",
    "start_date",
    "end_date",
    "has_end_date",
    "session_time",
    "selected_days",
    "frequency",
)


def _normalize_date(value: object, code: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        raise ValidationError(code)
    try:
        return date.fromisoformat(value.strip()[:10]).isoformat()
    except ValueError as exc:
        raise ValidationError(code) from exc


def _normalize_field(name: str, value: Any) -> Any:
    if name == "title":
        return require_text(value, "invalid_title", max_length=200)
    if name == "description":
        return require_text(value, "invalid_description")
    if name == "category":
        return require_text(value, "invalid_category", max_length=100)
    if name == "course_type":
        if value not in COURSE_TYPES:
            raise ValidationError("invalid_course_type")
        return value
    if name == "session_duration":
        return positive_int(value, "invalid_duration")
    if name == "enrollment_limit":
        return positive_int(value, "invalid_enrollment_limit")
    if name in ("is_self_paced", "has_end_date"):
        if not isinstance(value, bool):
            raise ValidationError(f"invalid_{name}")
        return value
    if name == "meeting_link":
        return optional_url(value, "invalid_meeting_link")
    if name == "timezone":
        return require_text(value, "invalid_timezone", max_length=64)
    if name == "start_date":
        return _normalize_date(value, "invalid_start_date")
    if name == "end_date":
        return _normalize_date(value, "invalid_end_date")
    if name == "session_time":
        if value is None or value == "":
            return None
        try:
            return parse_session_time(value).strftime("%H:%M")
        except ValueError as exc:
            raise ValidationError("invalid_session_time") from exc
    if name == "selected_days":
        try:
            days = normalize_weekdays(value)
        except ValueError as exc:
            raise ValidationError("invalid_weekday") from exc
        return [d for d in WEEKDAY_NAMES if d in days]
    if name == "frequency":
        if value not in FREQUENCIES:
            raise ValidationError("invalid_frequency")
        return value
    raise ValidationError("invalid_field")


def _check_schedule(row: Mapping[str, Any]) -> None:
    if row.get("has_end_date") and row.get("end_date") and row.get("start_date"):
        if row["end_date"] < row["start_date"]:
            raise ValidationError("invalid_end_date")
    if is_scheduled_group_course(row) and not row.get("session_time"):
        raise ValidationError("invalid_session_time")


def _ratings_by_course(store: RecordStore, course_ids: Iterable[str]) -> Dict[str, dict]:
    ids = list(course_ids)
    out: Dict[str, dict] = {cid: {"average_rating": 0, "total_ratings": 0} for cid in ids}
    if not ids:
        return out
    rows = store.select("reviews", filters=[in_("course_id", ids), eq("is_published", True)])
    grouped: Dict[str, List[int]] = {}
    for row in rows:
        grouped.setdefault(row["course_id"], []).append(int(row.get("rating") or 0))
    for cid, values in grouped.items():
        out[cid] = {"average_rating": round_half_up(sum(values) / len(values), 1), "total_ratings": len(values)}
    return out


def _active_count(enrollments: Optional[List[dict]]) -> int:
    return sum(1 for e in enrollments or [] if e.get("status") != "dropped")


@dataclass
class CoursesService:
    """Use cases for courses (framework-independent)."""

    store: RecordStore
    sessions: SessionsService
    clock: Callable[[], datetime] = utcnow

    @guarded("create_course")
    def create_course(self, actor: ActorContext, data: Mapping[str, Any]) -> dict:
        if not (actor.is_instructor or actor.has_role("admin")):
            raise UnauthorizedError("instructor_role_required")
        row: Dict[str, Any] = {
            "title": _normalize_field("title", data.get("title")),
            "description": _normalize_field("description", data.get("description")),
            "category": _normalize_field("category", data.get("category")),
            "course_type": _normalize_field("course_type", data.get("course_type") or "group"),
            "session_duration": _normalize_field("session_duration", data.get("session_duration")),
            "enrollment_limit": _normalize_field("enrollment_limit", data.get("enrollment_limit")),
            "is_self_paced": _normalize_field("is_self_paced", bool(data.get("is_self_paced", False))),
            "meeting_link": _normalize_field("meeting_link", data.get("meeting_link")),
            "timezone": _normalize_field("timezone", data.get("timezone") or DEFAULT_TIMEZONE),
            "start_date": _normalize_field("start_date", data.get("start_date")),
            "end_date": _normalize_field("end_date", data.get("end_date")),
            "has_end_date": _normalize_field("has_end_date", bool(data.get("has_end_date", False))),
            "session_time": _normalize_field("session_time", data.get("session_time")),
            "selected_days": _normalize_field("selected_days", data.get("selected_days") or []),
            "frequency": _normalize_field("frequency", data.get("frequency") or "weekly"),
            "instructor_id": actor.user_id,
            "price": 0,
            "status": "published",
            "is_published": True,
        }
        _check_schedule(row)
        course = self.store.insert("courses", [row])[0]
        sessions: List[dict] = []
        failed: List[dict] = []
        if is_scheduled_group_course(course):
            result = self.sessions.generate_for_course(course)
            sessions, failed = result.created, result.failed
        return {"course": course, "sessions": sessions, "failed_sessions": failed}

    @guarded("list_instructor_courses")
    def list_instructor_courses(self, actor: ActorContext) -> List[dict]:
        rows = self.store.select(
            "courses",
            filters=[eq("instructor_id", actor.user_id)],
            order_by="created_at",
            descending=True,
            expand=[
                Expand("enrollments", "enrollments", "id", "course_id", many=True),
                Expand("sessions", "sessions", "id", "course_id", many=True, count_only=True),
            ],
        )
        out = []
        for row in rows:
            enrollments = row.pop("enrollments", None)
            row["enrollment_count"] = _active_count(enrollments)
            row["session_count"] = embedded_count(row, "sessions")
            row.pop("sessions", None)
            out.append(row)
        return out

    def _shape_listing(self, row: dict, rating: Mapping[str, Any], now: datetime) -> dict:
        instructor = row.pop("instructor", None)
        enrolled = _active_count(row.pop("enrollments", None))
        total_sessions = embedded_count(row, "sessions")
        row.pop("sessions", None)
        row.update(
            {
                "instructor_name": display_name(instructor, fallback="Unknown Instructor"),
                "instructor_avatar_url": (instructor or {}).get("avatar_url"),
                "current_enrollment": enrolled,
                "total_sessions": total_sessions,
                "average_rating": rating.get("average_rating", 0),
                "total_ratings": rating.get("total_ratings", 0),
                "session_frequency": row.get("frequency") or "weekly",
                "status_text": timeline.course_status_text(row, now),
                "enrollment_open": timeline.is_enrollment_open(row, enrolled, now),
                "timeline": timeline.build_timeline(row),
            }
        )
        return row

    @guarded("list_published_courses")
    def list_published_courses(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[dict]:
        filters = [eq("is_published", True)]
        if category:
            filters.append(eq("category", category))
        rows = self.store.select(
            "courses",
            filters=filters,
            order_by="created_at",
            descending=True,
            expand=[
                Expand("instructor", "profiles", "instructor_id"),
                Expand("enrollments", "enrollments", "id", "course_id", many=True),
                Expand("sessions", "sessions", "id", "course_id", many=True, count_only=True),
            ],
        )
        if search:
            needle = search.strip().lower()
            rows = [
                r
                for r in rows
                if needle in (r.get("title") or "").lower() or needle in (r.get("description") or "").lower()
            ]
        ratings = _ratings_by_course(self.store, [r["id"] for r in rows])
        moment = now or self.clock()
        return [self._shape_listing(r, ratings.get(r["id"], {}), moment) for r in rows]

    @guarded("get_course")
    def get_course(
        self, course_id: str, actor: Optional[ActorContext] = None, *, now: Optional[datetime] = None
    ) -> dict:
        rows = self.store.select(
            "courses",
            filters=[eq("id", course_id)],
            limit=1,
            expand=[
                Expand("instructor", "profiles", "instructor_id"),
                Expand("enrollments", "enrollments", "id", "course_id", many=True),
                Expand("sessions", "sessions", "id", "course_id", many=True),
            ],
        )
        if not rows:
            raise NotFoundError("course_not_found")
        course = rows[0]
        is_owner = actor is not None and course.get("instructor_id") == actor.user_id
        if not course.get("is_published") and not is_owner:
            raise NotFoundError("course_not_found")
        instructor = course.pop("instructor", None) or {}
        enrolled = _active_count(course.pop("enrollments", None))
        sessions = sorted(course.pop("sessions", None) or [], key=lambda s: s.get("session_date") or "")
        rating = _ratings_by_course(self.store, [course_id])[course_id]
        moment = now or self.clock()
        course.update(
            {
                "instructor_name": display_name(instructor, fallback="Unknown Instructor"),
                "instructor_bio": instructor.get("bio") or "",
                "instructor_expertise": instructor.get("expertise") or [],
                "instructor_avatar_url": instructor.get("avatar_url"),
                "current_enrollment": enrolled,
                "sessions": sessions,
                "total_sessions": len(sessions),
                "average_rating": rating["average_rating"],
                "total_ratings": rating["total_ratings"],
                "session_frequency": course.get("frequency") or "weekly",
                "session_duration": course.get("session_duration") or 60,
                "selected_days": course.get("selected_days") or [],
                "status_text": timeline.course_status_text(course, moment),
                "enrollment_status": timeline.enrollment_status_text(course, enrolled, moment),
                "next_session_date": _iso_or_none(timeline.next_session_date(course, moment)),
                "timeline": timeline.build_timeline(course),
            }
        )
        return course

    @guarded("update_course")
    def update_course(self, course_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        current = require_course_owner(self.store, course_id, actor.user_id)
        unknown = [k for k in changes if k not in _UPDATABLE]
        if unknown:
            raise ValidationError("invalid_field")
        update = {k: _normalize_field(k, v) for k, v in changes.items()}
        if not update:
            raise ValidationError("empty_update")
        _check_schedule({**current, **update})
        update["updated_at"] = self.clock().isoformat()
        updated = self.store.update("courses", course_id, update)
        if updated is None:
            raise NotFoundError("course_not_found")
        return updated

    def _set_published(self, course_id: str, actor: ActorContext, published: bool) -> dict:
        require_course_owner(self.store, course_id, actor.user_id)
        updated = self.store.update(
            "courses",
            course_id,
            {"is_published": published, "status": "published" if published else "draft", "updated_at": self.clock().isoformat()},
        )
        if updated is None:
            raise NotFoundError("course_not_found")
        return updated

    @guarded("publish_course")
    def publish_course(self, course_id: str, actor: ActorContext) -> dict:
        return self._set_published(course_id, actor, True)

    @guarded("unpublish_course")
    def unpublish_course(self, course_id: str, actor: ActorContext) -> dict:
        return self._set_published(course_id, actor, False)

    @guarded("delete_course")
    def delete_course(self, course_id: str, actor: ActorContext) -> bool:
        require_course_owner(self.store, course_id, actor.user_id)
        blocking = self.store.select(
            "enrollments", filters=[eq("course_id", course_id), neq("status", "dropped")], limit=1
        )
        if blocking:
            raise ConflictError("course_has_enrollments")
        if not self.store.delete("courses", course_id):
            raise NotFoundError("course_not_found")
        return True

    @guarded("course_stats")
    def course_stats(self, actor: ActorContext) -> dict:
        courses = self.store.select("courses", filters=[eq("instructor_id", actor.user_id)])
        ids = [c["id"] for c in courses]
        enrollments = self.store.select("enrollments", filters=[in_("course_id", ids)]) if ids else []
        return {
            "total_courses": len(courses),
            "published_courses": sum(1 for c in courses if c.get("is_published")),
            "draft_courses": sum(1 for c in courses if not c.get("is_published")),
            "total_enrollments": len(enrollments),
        }


def _iso_or_none(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


__all__ = ["CoursesService", "COURSE_TYPES", "FREQUENCIES"]
