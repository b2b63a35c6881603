"""
Ownership and access checks (re-fetch and compare).

These checks are advisory. They give early, readable errors to callers, but
the security boundary is the hosted database's row-level rules: a check and
the following mutation are two separate round trips, so a concurrent change
can slip in between.
"""
from __future__ import annotations

from typing import Optional, Tuple

from records.ports import RecordStore, eq, first, in_, neq

from .errors import NotFoundError, UnauthorizedError


def get_course(store: RecordStore, course_id: str) -> dict:
    if not course_id:
        raise NotFoundError("course_not_found")
    course = first(store, "courses", filters=[eq("id", course_id)])
    if course is None:
        raise NotFoundError("course_not_found")
    return course


def require_course_owner(store: RecordStore, course_id: str, actor_id: str) -> dict:
    """Return the course when `actor_id` is its instructor."""
    course = get_course(store, course_id)
    if course.get("instructor_id") != actor_id:
        raise UnauthorizedError("not_course_owner")
    return course


def is_instructor_of(store: RecordStore, course_id: str, actor_id: str) -> bool:
    course = first(store, "courses", filters=[eq("id", course_id)])
    return bool(course and course.get("instructor_id") == actor_id)


def owning_course_of(
    store: RecordStore,
    table: str,
    record_id: str,
    actor_id: str,
    *,
    not_found: str,
) -> Tuple[dict, dict]:
    """Fetch a course-scoped record and require the actor to own its course.

    Returns (record, course). Missing record raises NotFoundError(not_found).
    """
    record = first(store, table, filters=[eq("id", record_id)]) if record_id else None
    if record is None:
        raise NotFoundError(not_found)
    course = require_course_owner(store, record.get("course_id"), actor_id)
    return record, course


def owns_student_profile(store: RecordStore, student_profile_id: str, parent_id: str) -> bool:
    profile = first(store, "students", filters=[eq("id", student_profile_id)])
    return bool(profile and profile.get("parent_id") == parent_id)


def parent_student_ids(store: RecordStore, parent_id: str) -> list[str]:
    return [row["id"] for row in store.select("students", filters=[eq("parent_id", parent_id)])]


def find_enrollment(
    store: RecordStore,
    course_id: str,
    *,
    student_id: Optional[str] = None,
    student_profile_id: Optional[str] = None,
    include_dropped: bool = True,
) -> Optional[dict]:
    filters = [eq("course_id", course_id)]
    if student_profile_id:
        filters.append(eq("student_profile_id", student_profile_id))
    else:
        filters.append(eq("student_id", student_id))
    if not include_dropped:
        filters.append(neq("status", "dropped"))
    return first(store, "enrollments", filters=filters)


def student_identity(store: RecordStore, actor_id: str, student_profile_id: Optional[str] = None) -> dict:
    """Acting student or a student profile owned by the acting parent."""
    if student_profile_id:
        if not owns_student_profile(store, student_profile_id, actor_id):
            raise UnauthorizedError("not_student_parent")
        return {"student_id": None, "student_profile_id": student_profile_id}
    return {"student_id": actor_id, "student_profile_id": None}


def has_course_access(store: RecordStore, course_id: str, actor_id: str) -> bool:
    """Instructor, enrolled student, or parent of an enrolled student profile."""
    course = first(store, "courses", filters=[eq("id", course_id)])
    if course is None:
        return False
    if course.get("instructor_id") == actor_id:
        return True
    if find_enrollment(store, course_id, student_id=actor_id, include_dropped=False):
        return True
    child_ids = parent_student_ids(store, actor_id)
    if not child_ids:
        return False
    rows = store.select(
        "enrollments",
        filters=[eq("course_id", course_id), in_("student_profile_id", child_ids), neq("status", "dropped")],
        limit=1,
    )
    return bool(rows)


def require_course_access(store: RecordStore, course_id: str, actor_id: str) -> dict:
    course = get_course(store, course_id)
    if not has_course_access(store, course_id, actor_id):
        raise UnauthorizedError("no_course_access")
    return course


__all__ = [
    "get_course",
    "require_course_owner",
    "is_instructor_of",
    "owning_course_of",
    "owns_student_profile",
    "parent_student_ids",
    "find_enrollment",
    "student_identity",
    "has_course_access",
    "require_course_access",
]
