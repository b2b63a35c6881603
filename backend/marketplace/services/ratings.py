"""Course ratings (one published review row per course and student)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from records.ports import RecordStore, eq, first

from ..authz import get_course
from ..context import ActorContext
from ..errors import NotFoundError, ValidationError
from .base import guarded, round_half_up, utcnow

MIN_RATING = 1
MAX_RATING = 5


def _normalize_rating(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("invalid_rating")
    if not math.isfinite(value) or value != int(value) or value < MIN_RATING or value > MAX_RATING:
        raise ValidationError("invalid_rating")
    return int(value)


@dataclass
class RatingsService:
    store: RecordStore
    clock: Callable[[], datetime] = utcnow

    @guarded("submit_rating")
    def submit_rating(self, course_id: str, actor: ActorContext, rating: object) -> dict:
        """Create the actor's rating for a course, or update the existing one."""
        value = _normalize_rating(rating)
        get_course(self.store, course_id)
        existing = first(self.store, "reviews", filters=[eq("course_id", course_id), eq("student_id", actor.user_id)])
        if existing is not None:
            updated = self.store.update("reviews", existing["id"], {"rating": value, "updated_at": self.clock().isoformat()})
            if updated is None:
                raise NotFoundError("rating_not_found")
            return updated
        row = {"course_id": course_id, "student_id": actor.user_id, "rating": value, "is_published": True}
        return self.store.insert("reviews", [row])[0]

    @guarded("get_student_rating")
    def get_student_rating(self, course_id: str, actor: ActorContext) -> Optional[dict]:
        return first(self.store, "reviews", filters=[eq("course_id", course_id), eq("student_id", actor.user_id)])

    @guarded("get_course_rating")
    def get_course_rating(self, course_id: str) -> dict:
        rows = self.store.select("reviews", filters=[eq("course_id", course_id), eq("is_published", True)])
        if not rows:
            return {"average_rating": 0, "total_ratings": 0}
        average = sum(int(r.get("rating") or 0) for r in rows) / len(rows)
        return {"average_rating": round_half_up(average, 1), "total_ratings": len(rows)}


__all__ = ["RatingsService", "MIN_RATING", "MAX_RATING"]
