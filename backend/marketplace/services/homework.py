"""Homework and submissions service layer.

Invariants:
    - Students only see and submit published homework of courses they are
      enrolled in (directly or through a parent-managed student profile).
    - At most one submission per (homework, student identity); resubmission
      goes through the instructor.
    - Homework with submissions cannot be deleted.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from records.ports import Expand, RecordStore, eq, first, in_
from storage.config import get_homework_bucket, get_resource_max_upload_bytes
from storage.keys import make_submission_key
from storage.ports import NullObjectStorage, ObjectStorage

from ..authz import (
    find_enrollment,
    is_instructor_of,
    owning_course_of,
    require_course_access,
    require_course_owner,
    student_identity,
)
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, OperationError, UnauthorizedError, ValidationError
from .base import guarded, optional_text, optional_url, parse_instant, positive_int, require_text, utcnow

logger = logging.getLogger("tutorhub.marketplace.homework")

SUBMISSION_TYPES = ("text", "file", "checkmark")
DEFAULT_POINTS = 100


def _normalize_homework_field(name: str, value: Any) -> Any:
    if name == "title":
        return require_text(value, "invalid_title", max_length=200)
    if name == "description":
        return require_text(value, "invalid_description")
    if name == "due_date":
        return None if value in (None, "") else parse_instant(value, "invalid_due_date")
    if name == "points":
        return positive_int(value, "invalid_points", allow_none=False)
    if name == "submission_type":
        if value not in SUBMISSION_TYPES:
            raise ValidationError("invalid_submission_type")
        return value
    if name == "is_published":
        if not isinstance(value, bool):
            raise ValidationError("invalid_is_published")
        return value
    if name == "attachments":
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValidationError("invalid_attachments")
        return value
    raise ValidationError("invalid_field")


def _normalize_grade(value: object, points: int) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("invalid_grade")
    if not math.isfinite(value) or value < 0 or value > points:
        raise ValidationError("invalid_grade")
    return value


@dataclass
class HomeworkService:
    """Use cases for homework assignments and submissions."""

    store: RecordStore
    storage: ObjectStorage = field(default_factory=NullObjectStorage)
    clock: Callable[[], datetime] = utcnow

    def _now(self) -> str:
        return self.clock().isoformat()

    def _homework(self, homework_id: str) -> dict:
        homework = first(self.store, "homework", filters=[eq("id", homework_id)]) if homework_id else None
        if homework is None:
            raise NotFoundError("homework_not_found")
        return homework

    @guarded("create_homework")
    def create_homework(self, course_id: str, actor: ActorContext, data: Mapping[str, Any]) -> dict:
        require_course_owner(self.store, course_id, actor.user_id)
        row = {
            "course_id": course_id,
            "title": _normalize_homework_field("title", data.get("title")),
            "description": _normalize_homework_field("description", data.get("description")),
            "due_date": _normalize_homework_field("due_date", data.get("due_date")),
            "points": _normalize_homework_field(
                "points", DEFAULT_POINTS if data.get("points") is None else data["points"]
            ),
            "submission_type": _normalize_homework_field("submission_type", data.get("submission_type") or "text"),
            "is_published": _normalize_homework_field("is_published", bool(data.get("is_published", False))),
            "attachments": _normalize_homework_field("attachments", data.get("attachments")),
        }
        return self.store.insert("homework", [row])[0]

    @guarded("list_course_homework")
    def list_course_homework(self, course_id: str, actor: ActorContext) -> List[dict]:
        course = require_course_access(self.store, course_id, actor.user_id)
        filters = [eq("course_id", course_id)]
        if course.get("instructor_id") != actor.user_id:
            filters.append(eq("is_published", True))
        return self.store.select("homework", filters=filters, order_by="due_date")

    @guarded("update_homework")
    def update_homework(self, homework_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        owning_course_of(self.store, "homework", homework_id, actor.user_id, not_found="homework_not_found")
        update = {k: _normalize_homework_field(k, v) for k, v in changes.items()}
        if not update:
            raise ValidationError("empty_update")
        update["updated_at"] = self._now()
        updated = self.store.update("homework", homework_id, update)
        if updated is None:
            raise NotFoundError("homework_not_found")
        return updated

    @guarded("delete_homework")
    def delete_homework(self, homework_id: str, actor: ActorContext) -> bool:
        owning_course_of(self.store, "homework", homework_id, actor.user_id, not_found="homework_not_found")
        if self.store.select("submissions", filters=[eq("homework_id", homework_id)], limit=1):
            raise ConflictError("homework_has_submissions")
        if not self.store.delete("homework", homework_id):
            raise NotFoundError("homework_not_found")
        return True

    def _require_enrolled(self, course_id: str, identity: Mapping[str, Any]) -> None:
        if find_enrollment(self.store, course_id, include_dropped=False, **identity) is None:
            raise UnauthorizedError("not_enrolled")

    @guarded("submit_homework")
    def submit_homework(
        self,
        homework_id: str,
        actor: ActorContext,
        data: Mapping[str, Any],
        *,
        student_profile_id: Optional[str] = None,
    ) -> dict:
        homework = self._homework(homework_id)
        if not homework.get("is_published"):
            raise ConflictError("homework_not_published")
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        self._require_enrolled(homework["course_id"], identity)
        key_column = "student_profile_id" if identity["student_profile_id"] else "student_id"
        existing = first(
            self.store,
            "submissions",
            filters=[eq("homework_id", homework_id), eq(key_column, identity[key_column])],
        )
        if existing is not None:
            raise ConflictError("already_submitted")
        content = optional_text(data.get("content"), "invalid_content")
        file_url = optional_url(data.get("file_url"), "invalid_file_url")
        kind = homework.get("submission_type") or "text"
        if kind == "text" and not content:
            raise ValidationError("content_required")
        if kind == "file" and not file_url:
            raise ValidationError("file_required")
        row = {
            "homework_id": homework_id,
            **identity,
            "content": content,
            "file_url": file_url,
            "status": "submitted",
            "submitted_at": self._now(),
        }
        return self.store.insert("submissions", [row])[0]

    @guarded("upload_submission_file")
    def upload_submission_file(
        self,
        homework_id: str,
        actor: ActorContext,
        *,
        filename: str,
        body: bytes,
        content_type: str,
        student_profile_id: Optional[str] = None,
    ) -> dict:
        homework = self._homework(homework_id)
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        self._require_enrolled(homework["course_id"], identity)
        if not body:
            raise ValidationError("empty_file")
        if len(body) > get_resource_max_upload_bytes():
            raise ValidationError("file_too_large")
        bucket = get_homework_bucket()
        key = make_submission_key(
            homework_id=homework_id,
            student_id=identity["student_profile_id"] or identity["student_id"],
            filename=filename,
            epoch_ms=int(time.time() * 1000),
            uuid_hex=uuid.uuid4().hex,
        )
        try:
            self.storage.upload(bucket=bucket, key=key, body=body, content_type=content_type)
            url = self.storage.public_url(bucket=bucket, key=key)
        except Exception as exc:
            logger.error("submission upload failed: %s", exc.__class__.__name__)
            raise OperationError("storage_upload_failed") from exc
        return {"file_url": url, "file_name": filename, "file_size": len(body), "storage_path": key}

    @guarded("list_homework_submissions")
    def list_homework_submissions(self, homework_id: str, actor: ActorContext) -> List[dict]:
        owning_course_of(self.store, "homework", homework_id, actor.user_id, not_found="homework_not_found")
        return self.store.select(
            "submissions",
            filters=[eq("homework_id", homework_id)],
            order_by="submitted_at",
            descending=True,
            expand=[
                Expand("profile", "profiles", "student_id"),
                Expand("student", "students", "student_profile_id"),
            ],
        )

    @guarded("grade_submission")
    def grade_submission(
        self,
        submission_id: str,
        actor: ActorContext,
        *,
        grade: object = None,
        feedback: object = None,
    ) -> dict:
        submission = first(self.store, "submissions", filters=[eq("id", submission_id)]) if submission_id else None
        if submission is None:
            raise NotFoundError("submission_not_found")
        homework = self._homework(submission["homework_id"])
        require_course_owner(self.store, homework["course_id"], actor.user_id)
        value = _normalize_grade(grade, int(homework.get("points") or DEFAULT_POINTS))
        update: Dict[str, Any] = {
            "grade": value,
            "feedback": optional_text(feedback, "invalid_feedback"),
            "status": "graded" if value is not None else "submitted",
            "graded_at": self._now() if value is not None else None,
        }
        updated = self.store.update("submissions", submission_id, update)
        if updated is None:
            raise NotFoundError("submission_not_found")
        return updated

    @guarded("list_student_submissions")
    def list_student_submissions(
        self, course_id: str, actor: ActorContext, *, student_profile_id: Optional[str] = None
    ) -> List[dict]:
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        if not is_instructor_of(self.store, course_id, actor.user_id):
            self._require_enrolled(course_id, identity)
        homework_ids = [h["id"] for h in self.store.select("homework", filters=[eq("course_id", course_id)])]
        if not homework_ids:
            return []
        key_column = "student_profile_id" if identity["student_profile_id"] else "student_id"
        return self.store.select(
            "submissions",
            filters=[in_("homework_id", homework_ids), eq(key_column, identity[key_column])],
            order_by="submitted_at",
            descending=True,
            expand=[Expand("homework", "homework", "homework_id")],
        )


__all__ = ["HomeworkService", "SUBMISSION_TYPES", "DEFAULT_POINTS"]
