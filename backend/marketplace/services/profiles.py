"""Profiles service layer (user profiles, avatars, parent-managed student profiles)."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from identity_access.domain import ALLOWED_ROLES, DEFAULT_ROLE
from records.ports import RecordStore, eq, first
from storage.config import AVATAR_CONTENT_TYPES, get_avatar_max_upload_bytes, get_profiles_bucket
from storage.keys import make_avatar_key
from storage.ports import NullObjectStorage, ObjectStorage

from ..context import ActorContext
from ..errors import NotFoundError, OperationError, UnauthorizedError, ValidationError
from .base import guarded, optional_text, optional_url, positive_int, require_text, utcnow

logger = logging.getLogger("tutorhub.marketplace.profiles")

_PROFILE_FIELDS = ("first_name", "last_name", "bio", "expertise", "avatar_url", "timezone", "interests")


def display_name(profile: Optional[Mapping[str, Any]], *, fallback: str = "") -> str:
    """Return "First Last", falling back to full_name and then `fallback`."""
    if not profile:
        return fallback
    joined = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
    return joined or (profile.get("full_name") or "").strip() or fallback


def _string_list(value: object, code: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValidationError(code)
    out: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(code)
        out.append(item.strip())
    return out


def _normalize_profile_field(name: str, value: Any) -> Any:
    if name in ("first_name", "last_name"):
        return require_text(value, f"invalid_{name}", max_length=100)
    if name == "bio":
        return optional_text(value, "invalid_bio")
    if name in ("expertise", "interests"):
        return _string_list(value, f"invalid_{name}")
    if name == "avatar_url":
        return optional_url(value, "invalid_avatar_url")
    if name == "timezone":
        return require_text(value, "invalid_timezone", max_length=64)
    raise ValidationError("invalid_field")


@dataclass
class ProfilesService:
    store: RecordStore
    storage: ObjectStorage = field(default_factory=NullObjectStorage)
    clock: Callable[[], datetime] = utcnow

    @guarded("get_profile")
    def get_profile(self, profile_id: str) -> dict:
        profile = first(self.store, "profiles", filters=[eq("id", profile_id)]) if profile_id else None
        if profile is None:
            raise NotFoundError("profile_not_found")
        return profile

    @guarded("list_instructors")
    def list_instructors(self) -> List[dict]:
        return self.store.select(
            "profiles", filters=[eq("role", "instructor")], order_by="created_at", descending=True
        )

    @guarded("register_profile")
    def register_profile(
        self, user_id: str, *, email: Optional[str], first_name: str, last_name: str, role: str = DEFAULT_ROLE
    ) -> dict:
        """Create the profile row for a freshly signed-up account (idempotent)."""
        existing = first(self.store, "profiles", filters=[eq("id", user_id)])
        if existing is not None:
            return existing
        if role not in ALLOWED_ROLES:
            raise ValidationError("invalid_role")
        first_clean = require_text(first_name, "invalid_first_name", max_length=100)
        last_clean = require_text(last_name, "invalid_last_name", max_length=100)
        row = {
            "id": user_id,
            "email": email,
            "first_name": first_clean,
            "last_name": last_clean,
            "full_name": f"{first_clean} {last_clean}",
            "role": role,
        }
        return self.store.insert("profiles", [row])[0]

    @guarded("update_profile")
    def update_profile(self, profile_id: str, actor: ActorContext, changes: Mapping[str, Any]) -> dict:
        if profile_id != actor.user_id:
            raise UnauthorizedError("not_profile_owner")
        current = self.get_profile(profile_id)
        if any(k not in _PROFILE_FIELDS for k in changes):
            raise ValidationError("invalid_field")
        update = {k: _normalize_profile_field(k, v) for k, v in changes.items()}
        if not update:
            raise ValidationError("empty_update")
        if "first_name" in update or "last_name" in update:
            merged = {**current, **update}
            update["full_name"] = display_name(merged)
        update["updated_at"] = self.clock().isoformat()
        updated = self.store.update("profiles", profile_id, update)
        if updated is None:
            raise NotFoundError("profile_not_found")
        return updated

    @guarded("upload_avatar")
    def upload_avatar(self, actor: ActorContext, *, filename: str, body: bytes, content_type: str) -> dict:
        if (content_type or "").lower() not in AVATAR_CONTENT_TYPES:
            raise ValidationError("invalid_content_type")
        if not body:
            raise ValidationError("empty_file")
        if len(body) > get_avatar_max_upload_bytes():
            raise ValidationError("file_too_large")
        self.get_profile(actor.user_id)
        bucket = get_profiles_bucket()
        key = make_avatar_key(user_id=actor.user_id, filename=filename, uuid_hex=uuid.uuid4().hex)
        try:
            self.storage.upload(bucket=bucket, key=key, body=body, content_type=content_type)
            url = self.storage.public_url(bucket=bucket, key=key)
        except Exception as exc:
            logger.error("avatar upload failed: %s", exc.__class__.__name__)
            raise OperationError("storage_upload_failed") from exc
        updated = self.store.update("profiles", actor.user_id, {"avatar_url": url, "updated_at": self.clock().isoformat()})
        return {"avatar_url": url, "storage_path": key, "profile": updated}

    @guarded("list_student_profiles")
    def list_student_profiles(self, actor: ActorContext) -> List[dict]:
        return self.store.select("students", filters=[eq("parent_id", actor.user_id)], order_by="created_at")

    @guarded("create_student_profile")
    def create_student_profile(self, actor: ActorContext, data: Mapping[str, Any]) -> dict:
        if not actor.is_parent:
            raise UnauthorizedError("parent_role_required")
        parent = first(self.store, "profiles", filters=[eq("id", actor.user_id)]) or {}
        age = positive_int(data.get("age"), "invalid_age")
        if age is not None and age > 120:
            raise ValidationError("invalid_age")
        last_name = data.get("last_name") or parent.get("last_name") or "Student"
        row = {
            "parent_id": actor.user_id,
            "first_name": require_text(data.get("first_name"), "invalid_first_name", max_length=100),
            "last_name": require_text(last_name, "invalid_last_name", max_length=100),
            "age": age,
            "date_of_birth": data.get("date_of_birth") or None,
            "grade_level": optional_text(data.get("grade_level"), "invalid_grade_level") or None,
            "interests": _string_list(data.get("interests"), "invalid_interests"),
            "bio": optional_text(data.get("bio"), "invalid_bio") or None,
        }
        return self.store.insert("students", [row])[0]


__all__ = ["ProfilesService", "display_name"]
