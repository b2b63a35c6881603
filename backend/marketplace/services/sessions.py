"""Course sessions service layer.

Why:
    Covers individual session CRUD for instructors and the two batch flows
    driven by the schedule generator: the initial batch when a scheduled
    group course is created and "generate more" for open-ended courses.

Behavior:
    - Batch inserts happen one row at a time. A failing row is logged and
      reported in `GenerationResult.failed`; the remaining rows still run.
    - "Generate more" resumes the day after the latest existing session and
      continues the "Session N Topics" numbering.
    - Deleting a session notifies active students fire-and-forget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, cast

from records.ports import Expand, RecordStore, StoreError, eq, first, gte, in_
from scheduling.recurrence import (
    PlannedSession,
    WeeklySchedule,
    build_schedule,
    generate_sessions,
    next_batch_start,
    next_session_number,
)

from ..authz import owning_course_of, require_course_access, require_course_owner
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..notifications import SESSION_DELETED_EMAIL, NotificationGateway, dispatch_quietly
from .base import (
    guarded,
    optional_text,
    optional_url,
    parse_instant,
    positive_int,
    require_text,
    utcnow,
)
from .profiles import display_name

logger = logging.getLogger("tutorhub.marketplace.sessions")

SESSION_STATUSES = ("scheduled", "completed", "cancelled")
DEFAULT_SESSION_MINUTES = 60
MAX_GENERATE_MORE = 50


@dataclass
class GenerationResult:
    created: List[dict] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"created": self.created, "failed": self.failed}


def is_scheduled_group_course(course: Mapping[str, Any]) -> bool:
    return (
        (course.get("course_type") or "group") == "group"
        and not course.get("is_self_paced")
        and bool(course.get("start_date"))
        and bool(course.get("selected_days"))
    )


def schedule_from_course(course: Mapping[str, Any]) -> WeeklySchedule:
    if not is_scheduled_group_course(course):
        raise ValidationError("course_not_scheduled")
    try:
        return build_schedule(
            start_date=course.get("start_date"),
            selected_days=course.get("selected_days"),
            session_time=course.get("session_time"),
            duration_minutes=course.get("session_duration") or DEFAULT_SESSION_MINUTES,
            end_date=course.get("end_date"),
            has_end_date=bool(course.get("has_end_date")),
            meeting_link=course.get("meeting_link"),
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _normalize_status(value: object) -> str:
    if value not in SESSION_STATUSES:
        raise ValidationError("invalid_session_status")
    return str(value)


@dataclass
class SessionsService:
    """Use cases for course sessions (framework-independent)."""

    store: RecordStore
    notifications: Optional[NotificationGateway] = None
    clock: Callable[[], datetime] = utcnow

    def _sessions_of(self, course_id: str) -> List[dict]:
        return self.store.select("sessions", filters=[eq("course_id", course_id)], order_by="session_date")

    @guarded("list_course_sessions")
    def list_course_sessions(self, course_id: str, actor: ActorContext) -> List[dict]:
        require_course_access(self.store, course_id, actor.user_id)
        return self._sessions_of(course_id)

    @guarded("create_session")
    def create_session(self, course_id: str, actor: ActorContext, data: Mapping[str, Any]) -> dict:
        course = require_course_owner(self.store, course_id, actor.user_id)
        title = require_text(data.get("title"), "invalid_title", max_length=200)
        session_date = parse_instant(data.get("session_date"), "invalid_session_date")
        duration = positive_int(
            data.get("duration_minutes") or course.get("session_duration") or DEFAULT_SESSION_MINUTES,
            "invalid_duration",
        )
        link = optional_url(data.get("meeting_link"), "invalid_meeting_link") or course.get("meeting_link") or ""
        row = {
            "course_id": course_id,
            "title": title,
            "description": optional_text(data.get("description"), "invalid_description"),
            "session_date": session_date,
            "duration_minutes": duration,
            "meeting_link": link,
            "meeting_password": optional_text(data.get("meeting_password"), "invalid_meeting_password"),
            "meeting_platform": data.get("meeting_platform") or None,
            "student_id": data.get("student_id") or None,
            "status": "scheduled",
        }
        created = self.store.insert("sessions", [row])
        return created[0]

    def _owned_session(self, session_id: str, actor: ActorContext) -> tuple[dict, dict]:
        return owning_course_of(self.store, "sessions", session_id, actor.user_id, not_found="session_not_found")

    @guarded("update_session")
    def update_session(self, session_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        self._owned_session(session_id, actor)
        update: dict[str, Any] = {}
        if "title" in changes:
            update["title"] = require_text(changes["title"], "invalid_title", max_length=200)
        if "description" in changes:
            update["description"] = optional_text(changes["description"], "invalid_description")
        if "session_date" in changes:
            update["session_date"] = parse_instant(changes["session_date"], "invalid_session_date")
        if "duration_minutes" in changes:
            update["duration_minutes"] = positive_int(changes["duration_minutes"], "invalid_duration", allow_none=False)
        if "meeting_link" in changes:
            update["meeting_link"] = optional_url(changes["meeting_link"], "invalid_meeting_link") or ""
        if "meeting_password" in changes:
            update["meeting_password"] = optional_text(changes["meeting_password"], "invalid_meeting_password")
        if "meeting_platform" in changes:
            update["meeting_platform"] = changes["meeting_platform"] or None
        if "status" in changes:
            update["status"] = _normalize_status(changes["status"])
        if not update:
            raise ValidationError("empty_update")
        updated = self.store.update("sessions", session_id, update)
        if updated is None:
            raise NotFoundError("session_not_found")
        return updated

    def update_session_meeting(
        self,
        session_id: str,
        actor: ActorContext,
        *,
        meeting_link: object,
        meeting_password: object = None,
        meeting_platform: object = None,
    ) -> dict:
        changes: dict[str, Any] = {"meeting_link": meeting_link}
        if meeting_password is not None:
            changes["meeting_password"] = meeting_password
        if meeting_platform is not None:
            changes["meeting_platform"] = meeting_platform
        return self.update_session(session_id, actor, changes)

    @guarded("delete_session")
    def delete_session(self, session_id: str, actor: ActorContext) -> bool:
        session, course = self._owned_session(session_id, actor)
        enrollments = self.store.select(
            "enrollments",
            filters=[eq("course_id", course["id"]), eq("status", "active")],
            expand=[Expand("profile", "profiles", "student_id")],
        )
        emails = [e["profile"]["email"] for e in enrollments if (e.get("profile") or {}).get("email")]
        if not self.store.delete("sessions", session_id):
            raise NotFoundError("session_not_found")
        if emails:
            instructor = first(self.store, "profiles", filters=[eq("id", course.get("instructor_id"))]) or {}
            dispatch_quietly(
                self.notifications,
                SESSION_DELETED_EMAIL,
                {
                    "sessionTitle": session.get("title"),
                    "sessionDate": session.get("session_date"),
                    "courseTitle": course.get("title"),
                    "courseId": course["id"],
                    "instructorName": display_name(instructor, fallback="Instructor"),
                    "studentEmails": emails,
                },
            )
        return True

    @guarded("list_upcoming_sessions")
    def list_upcoming_sessions(
        self, actor: ActorContext, *, limit: int = 5, now: Optional[datetime] = None
    ) -> List[dict]:
        courses = self.store.select("courses", filters=[eq("instructor_id", actor.user_id)])
        if not courses:
            return []
        moment = (now or self.clock()).replace(tzinfo=None)
        return self.store.select(
            "sessions",
            filters=[in_("course_id", [c["id"] for c in courses]), gte("session_date", moment.isoformat())],
            order_by="session_date",
            limit=max(1, int(limit)),
            expand=[Expand("course", "courses", "course_id")],
        )

    # --- batch generation ----------------------------------------------------------

    def insert_planned(self, course_id: str, planned: List[PlannedSession]) -> GenerationResult:
        """Insert planned sessions one row at a time, collecting failures."""
        result = GenerationResult()
        for item in planned:
            try:
                result.created.extend(self.store.insert("sessions", [item.to_record(course_id)]))
            except StoreError as exc:
                logger.error("session insert failed course=%s number=%s: %s", course_id, item.number, exc)
                result.failed.append(
                    {"number": item.number, "session_date": item.starts_at.isoformat(), "error": str(exc)}
                )
        return result

    @guarded("generate_initial_sessions")
    def generate_initial_sessions(self, course_id: str, actor: ActorContext) -> GenerationResult:
        course = require_course_owner(self.store, course_id, actor.user_id)
        return self.generate_for_course(course)

    def generate_for_course(self, course: Mapping[str, Any]) -> GenerationResult:
        """Initial batch for an already authorized course record."""
        schedule = schedule_from_course(course)
        if self.store.select("sessions", filters=[eq("course_id", course["id"])], limit=1):
            raise ConflictError("sessions_already_exist")
        return self.insert_planned(course["id"], generate_sessions(schedule))

    @guarded("generate_more_sessions")
    def generate_more_sessions(self, course_id: str, actor: ActorContext, *, count: int = 5) -> GenerationResult:
        course = require_course_owner(self.store, course_id, actor.user_id)
        batch = cast(int, positive_int(count, "invalid_count", allow_none=False))
        if batch > MAX_GENERATE_MORE:
            raise ValidationError("invalid_count")
        schedule = schedule_from_course(course)
        if schedule.is_bounded:
            raise ValidationError("course_not_open_ended")
        existing = self._sessions_of(course_id)
        start_from = None
        if existing:
            latest = max(existing, key=lambda s: s.get("session_date") or "")
            try:
                start_from = next_batch_start(latest.get("session_date"))
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
        first_number = next_session_number((s.get("title") for s in existing), len(existing))
        planned = generate_sessions(schedule, first_number=first_number, start_from=start_from, batch_size=batch)
        return self.insert_planned(course_id, planned)


__all__ = [
    "SessionsService",
    "GenerationResult",
    "SESSION_STATUSES",
    "is_scheduled_group_course",
    "schedule_from_course",
]
