"""Course rating API routes."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

ratings_router = APIRouter(tags=["Ratings"])


class RatingPayload(BaseModel):
    # Range is enforced by the service (400 invalid_rating).
    rating: Any


@ratings_router.put("/api/courses/{course_id}/rating")
async def submit_rating(request: Request, course_id: str, payload: RatingPayload):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        rating = wiring.ratings_service().submit_rating(course_id, actor, payload.rating)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(rating)


@ratings_router.get("/api/courses/{course_id}/rating")
async def get_course_rating(course_id: str):
    """Public average (one decimal) and count of published ratings."""
    try:
        summary = wiring.ratings_service().get_course_rating(course_id)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(summary)


@ratings_router.get("/api/courses/{course_id}/my-rating")
async def get_student_rating(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        rating = wiring.ratings_service().get_student_rating(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private({"rating": rating})
