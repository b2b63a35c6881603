"""Course resources service layer (files and links shared with students)."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from records.ports import Expand, RecordStore, eq, in_
from storage.config import get_courses_bucket, get_resource_max_upload_bytes
from storage.keys import make_resource_key
from storage.ports import NullObjectStorage, ObjectStorage

from ..authz import find_enrollment, owning_course_of, require_course_access, require_course_owner, student_identity
from ..context import ActorContext
from ..errors import NotFoundError, OperationError, UnauthorizedError, ValidationError
from .base import guarded, optional_text, optional_url, positive_int, require_text, utcnow

logger = logging.getLogger("tutorhub.marketplace.resources")

RESOURCE_TYPES = ("file", "link")
_UPDATABLE = ("title", "description", "resource_type", "file_url", "link_url", "file_size", "file_type", "is_public")


def _normalize_resource_field(name: str, value: Any) -> Any:
    if name == "title":
        return require_text(value, "invalid_title", max_length=200)
    if name == "description":
        return optional_text(value, "invalid_description")
    if name == "resource_type":
        if value not in RESOURCE_TYPES:
            raise ValidationError("invalid_resource_type")
        return value
    if name == "file_url":
        return optional_url(value, "invalid_file_url")
    if name == "link_url":
        return optional_url(value, "invalid_link_url")
    if name == "file_size":
        return positive_int(value, "invalid_file_size")
    if name == "file_type":
        return optional_text(value, "invalid_file_type") or None
    if name == "is_public":
        if not isinstance(value, bool):
            raise ValidationError("invalid_is_public")
        return value
    raise ValidationError("invalid_field")


def _check_target(row: Mapping[str, Any]) -> None:
    kind = row.get("resource_type")
    if kind == "file" and not row.get("file_url"):
        raise ValidationError("file_url_required")
    if kind == "link" and not row.get("link_url"):
        raise ValidationError("link_url_required")


@dataclass
class ResourcesService:
    store: RecordStore
    storage: ObjectStorage = field(default_factory=NullObjectStorage)
    clock: Callable[[], datetime] = utcnow

    @guarded("create_resource")
    def create_resource(self, course_id: str, actor: ActorContext, data: Mapping[str, Any]) -> dict:
        require_course_owner(self.store, course_id, actor.user_id)
        if data.get("resource_type") not in RESOURCE_TYPES:
            raise ValidationError("invalid_resource_type")
        row: Dict[str, Any] = {"course_id": course_id, "description": "", "is_public": False}
        for name in _UPDATABLE:
            if data.get(name) is not None:
                row[name] = _normalize_resource_field(name, data[name])
        if "title" not in row:
            raise ValidationError("invalid_title")
        _check_target(row)
        return self.store.insert("resources", [row])[0]

    @guarded("list_course_resources")
    def list_course_resources(self, course_id: str, actor: ActorContext) -> List[dict]:
        course = require_course_access(self.store, course_id, actor.user_id)
        filters = [eq("course_id", course_id)]
        if course.get("instructor_id") != actor.user_id:
            filters.append(eq("is_public", True))
        return self.store.select("resources", filters=filters, order_by="created_at", descending=True)

    @guarded("update_resource")
    def update_resource(self, resource_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        current, _ = owning_course_of(
            self.store, "resources", resource_id, actor.user_id, not_found="resource_not_found"
        )
        if any(k not in _UPDATABLE for k in changes):
            raise ValidationError("invalid_field")
        update = {k: _normalize_resource_field(k, v) for k, v in changes.items()}
        if not update:
            raise ValidationError("empty_update")
        _check_target({**current, **update})
        update["updated_at"] = self.clock().isoformat()
        updated = self.store.update("resources", resource_id, update)
        if updated is None:
            raise NotFoundError("resource_not_found")
        return updated

    @guarded("delete_resource")
    def delete_resource(self, resource_id: str, actor: ActorContext) -> bool:
        """Delete the record; the stored object (if any) is left in the bucket."""
        owning_course_of(self.store, "resources", resource_id, actor.user_id, not_found="resource_not_found")
        if not self.store.delete("resources", resource_id):
            raise NotFoundError("resource_not_found")
        return True

    @guarded("upload_resource_file")
    def upload_resource_file(
        self, course_id: str, actor: ActorContext, *, filename: str, body: bytes, content_type: str
    ) -> dict:
        require_course_owner(self.store, course_id, actor.user_id)
        if not body:
            raise ValidationError("empty_file")
        if len(body) > get_resource_max_upload_bytes():
            raise ValidationError("file_too_large")
        bucket = get_courses_bucket()
        key = make_resource_key(course_id=course_id, filename=filename, uuid_hex=uuid.uuid4().hex)
        try:
            self.storage.upload(bucket=bucket, key=key, body=body, content_type=content_type)
            url = self.storage.public_url(bucket=bucket, key=key)
        except Exception as exc:
            logger.error("resource upload failed: %s", exc.__class__.__name__)
            raise OperationError("storage_upload_failed") from exc
        return {
            "file_url": url,
            "file_name": filename,
            "file_size": len(body),
            "file_type": content_type,
            "storage_path": key,
        }

    @guarded("track_resource_access")
    def track_resource_access(
        self, resource_id: str, actor: ActorContext, *, student_profile_id: Optional[str] = None
    ) -> bool:
        rows = self.store.select("resources", filters=[eq("id", resource_id)], limit=1) if resource_id else []
        if not rows:
            raise NotFoundError("resource_not_found")
        identity = student_identity(self.store, actor.user_id, student_profile_id)
        if find_enrollment(self.store, rows[0]["course_id"], include_dropped=False, **identity) is None:
            raise UnauthorizedError("not_enrolled")
        logger.info(
            "resource accessed resource=%s profile=%s", resource_id, bool(identity["student_profile_id"])
        )
        return True

    @guarded("resource_stats")
    def resource_stats(self, actor: ActorContext) -> dict:
        courses = {c["id"]: c for c in self.store.select("courses", filters=[eq("instructor_id", actor.user_id)])}
        if not courses:
            return {"total_resources": 0, "file_resources": 0, "link_resources": 0, "resources_by_course": {}}
        rows = self.store.select(
            "resources",
            filters=[in_("course_id", list(courses))],
            expand=[Expand("course", "courses", "course_id")],
        )
        by_course: Dict[str, int] = {}
        for row in rows:
            title = (row.get("course") or {}).get("title") or row["course_id"]
            by_course[title] = by_course.get(title, 0) + 1
        return {
            "total_resources": len(rows),
            "file_resources": sum(1 for r in rows if r.get("resource_type") == "file"),
            "link_resources": sum(1 for r in rows if r.get("resource_type") == "link"),
            "resources_by_course": by_course,
        }


__all__ = ["ResourcesService", "RESOURCE_TYPES"]
