"""Enrollments service layer.

Why:
    Enrollment ties a student (or a parent-managed student profile) to a
    course and carries a status lifecycle: active -> completed | dropped.

Invariants:
    - At most one enrollment row per (course, student identity). Dropped
      enrollments are reactivated in place (same id, status active, progress 0)
      instead of inserting a second row.
    - The check and the insert are separate round trips; the hosted database
      remains the final arbiter.
    - Confirmation e-mails are fire-and-forget: delivery failures are logged
      and never affect the enrollment result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from records.ports import Expand, RecordStore, eq, first, in_

from ..authz import find_enrollment, get_course, owns_student_profile, require_course_owner, student_identity
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ..notifications import ENROLLMENT_EMAIL, NotificationGateway, dispatch_quietly
from .base import guarded, round_half_up, utcnow
from .profiles import display_name

ENROLLMENT_STATUSES = ("active", "completed", "dropped")


def _normalize_progress(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("invalid_progress")
    try:
        progress = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_progress") from exc
    if progress < 0 or progress > 100:
        raise ValidationError("invalid_progress")
    return progress


def _average_progress(rows: List[dict]) -> int:
    active = [r for r in rows if r.get("status") == "active"]
    if not active:
        return 0
    return int(round_half_up(sum(int(r.get("progress") or 0) for r in active) / len(active)))


@dataclass
class EnrollmentsService:
    """Use cases for enrollments (framework-independent)."""

    store: RecordStore
    notifications: Optional[NotificationGateway] = None
    clock: Callable[[], datetime] = utcnow

    def _now(self) -> str:
        return self.clock().isoformat()

    def _resolve_identity(
        self, actor: ActorContext, student_id: Optional[str], student_profile_id: Optional[str]
    ) -> Dict[str, Optional[str]]:
        if bool(student_id) == bool(student_profile_id):
            raise ValidationError("invalid_student")
        if student_profile_id:
            if not owns_student_profile(self.store, student_profile_id, actor.user_id):
                raise UnauthorizedError("not_student_parent")
            return {"student_id": None, "student_profile_id": student_profile_id}
        if student_id != actor.user_id:
            raise UnauthorizedError("not_student")
        return {"student_id": student_id, "student_profile_id": None}

    @guarded("enroll")
    def enroll(
        self,
        course_id: str,
        actor: ActorContext,
        *,
        student_id: Optional[str] = None,
        student_profile_id: Optional[str] = None,
    ) -> dict:
        identity = self._resolve_identity(actor, student_id, student_profile_id)
        course = get_course(self.store, course_id)
        if not course.get("is_published"):
            raise ConflictError("course_not_published")
        if identity["student_id"] and course.get("instructor_id") == identity["student_id"]:
            raise ValidationError("cannot_enroll_in_own_course")

        existing = find_enrollment(self.store, course_id, **identity)
        if existing is not None:
            if existing.get("status") == "active":
                raise ConflictError("already_enrolled")
            if existing.get("status") == "completed":
                raise ConflictError("already_completed")

        limit = course.get("enrollment_limit")
        if limit:
            active = self.store.select("enrollments", filters=[eq("course_id", course_id), eq("status", "active")])
            if len(active) >= int(limit):
                raise ConflictError("course_full")

        now = self._now()
        if existing is not None:
            enrollment = self.store.update(
                "enrollments",
                existing["id"],
                {"status": "active", "progress": 0, "enrolled_at": now, "dropped_at": None, "completed_at": None},
            )
            if enrollment is None:
                raise NotFoundError("enrollment_not_found")
        else:
            row = {"course_id": course_id, **identity, "status": "active", "progress": 0, "enrolled_at": now}
            enrollment = self.store.insert("enrollments", [row])[0]

        self._send_confirmation(course, actor, identity)
        return enrollment

    def _send_confirmation(self, course: Mapping[str, Any], actor: ActorContext, identity: Mapping[str, Any]) -> None:
        instructor = first(self.store, "profiles", filters=[eq("id", course.get("instructor_id"))]) or {}
        if identity.get("student_profile_id"):
            student = first(self.store, "students", filters=[eq("id", identity["student_profile_id"])]) or {}
        else:
            student = first(self.store, "profiles", filters=[eq("id", actor.user_id)]) or {}
        recipient = actor.email or student.get("email")
        if not recipient:
            return
        dispatch_quietly(
            self.notifications,
            ENROLLMENT_EMAIL,
            {
                "studentEmail": recipient,
                "studentName": display_name(student, fallback="Student"),
                "courseTitle": course.get("title"),
                "courseId": course.get("id"),
                "instructorName": display_name(instructor, fallback="Instructor"),
                "startDate": course.get("start_date"),
            },
        )

    @guarded("list_student_enrollments")
    def list_student_enrollments(
        self,
        actor: ActorContext,
        *,
        student_profile_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[dict]:
        if student_profile_id:
            if not owns_student_profile(self.store, student_profile_id, actor.user_id):
                raise UnauthorizedError("not_student_parent")
            filters = [eq("student_profile_id", student_profile_id)]
        else:
            filters = [eq("student_id", actor.user_id)]
        if status:
            if status not in ENROLLMENT_STATUSES:
                raise ValidationError("invalid_status")
            filters.append(eq("status", status))
        rows = self.store.select(
            "enrollments",
            filters=filters,
            order_by="enrolled_at",
            descending=True,
            expand=[Expand("course", "courses", "course_id")],
        )
        instructor_ids = {r["course"]["instructor_id"] for r in rows if r.get("course")}
        profiles = self.store.select("profiles", filters=[in_("id", list(instructor_ids))]) if instructor_ids else []
        instructors = {p["id"]: p for p in profiles}
        for row in rows:
            course = row.get("course")
            if course:
                course["instructor_name"] = display_name(
                    instructors.get(course.get("instructor_id")), fallback="Unknown Instructor"
                )
        return rows

    @guarded("list_course_enrollments")
    def list_course_enrollments(self, course_id: str, actor: ActorContext) -> List[dict]:
        require_course_owner(self.store, course_id, actor.user_id)
        rows = self.store.select(
            "enrollments",
            filters=[eq("course_id", course_id)],
            order_by="enrolled_at",
            descending=True,
            expand=[
                Expand("profile", "profiles", "student_id"),
                Expand("student", "students", "student_profile_id"),
            ],
        )
        for row in rows:
            row["student_name"] = display_name(row.get("profile") or row.get("student"), fallback="Student")
        return rows

    @guarded("update_enrollment")
    def update_enrollment(self, enrollment_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        enrollment = first(self.store, "enrollments", filters=[eq("id", enrollment_id)]) if enrollment_id else None
        if enrollment is None:
            raise NotFoundError("enrollment_not_found")
        require_course_owner(self.store, enrollment["course_id"], actor.user_id)
        if any(k not in ("status", "progress", "completed_at") for k in changes):
            raise ValidationError("invalid_field")
        update: Dict[str, Any] = {}
        if "progress" in changes:
            update["progress"] = _normalize_progress(changes["progress"])
        if "status" in changes:
            status = changes["status"]
            if status not in ENROLLMENT_STATUSES:
                raise ValidationError("invalid_status")
            update["status"] = status
            if status == "completed":
                update["completed_at"] = changes.get("completed_at") or self._now()
            elif status == "dropped":
                update["dropped_at"] = self._now()
        if not update:
            raise ValidationError("empty_update")
        updated = self.store.update("enrollments", enrollment_id, update)
        if updated is None:
            raise NotFoundError("enrollment_not_found")
        return updated

    @guarded("withdraw")
    def withdraw(self, course_id: str, actor: ActorContext, *, student_profile_id: Optional[str] = None) -> dict:
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        enrollment = find_enrollment(self.store, course_id, **identity)
        if enrollment is None:
            raise NotFoundError("enrollment_not_found")
        if enrollment.get("status") == "dropped":
            raise ConflictError("already_dropped")
        updated = self.store.update("enrollments", enrollment["id"], {"status": "dropped", "dropped_at": self._now()})
        if updated is None:
            raise NotFoundError("enrollment_not_found")
        return updated

    @guarded("check_enrollment")
    def check_enrollment(
        self, course_id: str, actor: ActorContext, *, student_profile_id: Optional[str] = None
    ) -> Optional[dict]:
        """Return the enrollment for the actor (or their student profile), else None."""
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        return find_enrollment(self.store, course_id, **identity)

    @guarded("enrollment_stats")
    def enrollment_stats(self, actor: ActorContext, *, now: Optional[datetime] = None) -> dict:
        courses = {c["id"]: c for c in self.store.select("courses", filters=[eq("instructor_id", actor.user_id)])}
        rows = self.store.select("enrollments", filters=[in_("course_id", list(courses))]) if courses else []
        moment = now or self.clock()
        month_start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()[:19]
        by_course: Dict[str, Dict[str, int]] = {}
        for row in rows:
            title = courses[row["course_id"]].get("title") or row["course_id"]
            bucket = by_course.setdefault(title, {"total": 0, "active": 0, "completed": 0, "dropped": 0})
            bucket["total"] += 1
            if row.get("status") in bucket:
                bucket[row["status"]] += 1
        return {
            "total_enrollments": len(rows),
            "active_enrollments": sum(1 for r in rows if r.get("status") == "active"),
            "completed_enrollments": sum(1 for r in rows if r.get("status") == "completed"),
            "dropped_enrollments": sum(1 for r in rows if r.get("status") == "dropped"),
            "enrollments_this_month": sum(1 for r in rows if (r.get("enrolled_at") or "")[:19] >= month_start),
            "average_progress": _average_progress(rows),
            "enrollments_by_course": by_course,
        }

    @guarded("course_completion_rate")
    def course_completion_rate(self, course_id: str, actor: ActorContext) -> dict:
        require_course_owner(self.store, course_id, actor.user_id)
        rows = self.store.select("enrollments", filters=[eq("course_id", course_id)])
        total = len(rows)
        completed = sum(1 for r in rows if r.get("status") == "completed")
        return {
            "total_enrollments": total,
            "completed_enrollments": completed,
            "active_enrollments": sum(1 for r in rows if r.get("status") == "active"),
            "completion_rate": int(round_half_up(completed / total * 100)) if total else 0,
            "average_progress": _average_progress(rows),
        }


__all__ = ["EnrollmentsService", "ENROLLMENT_STATUSES"]
