"""
Course session API routes (manual sessions and schedule generation).

Permissions:
    - Listing sessions requires course access (instructor, enrolled student or
      parent of an enrolled student profile).
    - Creating, editing, deleting and generating sessions requires ownership.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

sessions_router = APIRouter(tags=["Sessions"])


class SessionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    session_date: str
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    meeting_link: Optional[str] = None
    meeting_password: Optional[str] = None
    meeting_platform: Optional[str] = None
    student_id: Optional[str] = None


class SessionUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    session_date: Optional[str] = None
    duration_minutes: Optional[int] = None
    meeting_link: Optional[str] = None
    meeting_password: Optional[str] = None
    meeting_platform: Optional[str] = None
    status: Optional[str] = None


class MeetingUpdate(BaseModel):
    meeting_link: Optional[str] = None
    meeting_password: Optional[str] = None
    meeting_platform: Optional[str] = None


class GenerateMorePayload(BaseModel):
    count: int = 5


@sessions_router.get("/api/courses/{course_id}/sessions")
async def list_course_sessions(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.sessions_service().list_course_sessions(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@sessions_router.post("/api/courses/{course_id}/sessions")
async def create_session(request: Request, course_id: str, payload: SessionCreate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        session = wiring.sessions_service().create_session(course_id, actor, payload.model_dump(exclude_none=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(session, status_code=201)


@sessions_router.patch("/api/sessions/{session_id}")
async def update_session(request: Request, session_id: str, payload: SessionUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        session = wiring.sessions_service().update_session(session_id, actor, payload.model_dump(exclude_unset=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(session)


@sessions_router.patch("/api/sessions/{session_id}/meeting")
async def update_session_meeting(request: Request, session_id: str, payload: MeetingUpdate):
    """Replace the meeting link (and optionally password/platform) of a session."""
    actor, error = require_actor(request)
    if error:
        return error
    try:
        session = wiring.sessions_service().update_session_meeting(
            session_id,
            actor,
            meeting_link=payload.meeting_link,
            meeting_password=payload.meeting_password,
            meeting_platform=payload.meeting_platform,
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(session)


@sessions_router.delete("/api/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.sessions_service().delete_session(session_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


@sessions_router.get("/api/instructor/upcoming-sessions")
async def list_upcoming_sessions(request: Request, limit: int = 5):
    actor, error = require_actor(request)
    if error:
        return error
    limit = max(1, min(50, int(limit or 5)))
    try:
        items = wiring.sessions_service().list_upcoming_sessions(actor, limit=limit)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@sessions_router.post("/api/courses/{course_id}/sessions/generate")
async def generate_initial_sessions(request: Request, course_id: str):
    """Generate the first batch from the course schedule (409 when sessions exist)."""
    actor, error = require_actor(request)
    if error:
        return error
    try:
        result = wiring.sessions_service().generate_initial_sessions(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result.as_dict(), status_code=201)


@sessions_router.post("/api/courses/{course_id}/sessions/generate-more")
async def generate_more_sessions(request: Request, course_id: str, payload: GenerateMorePayload):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        result = wiring.sessions_service().generate_more_sessions(course_id, actor, count=payload.count)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result.as_dict(), status_code=201)
