"""
Profile API routes: own profile, avatars, instructors, parent-managed students.
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

profiles_router = APIRouter(tags=["Profiles"])


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    expertise: Optional[List[str]] = None
    avatar_url: Optional[str] = None
    timezone: Optional[str] = None
    interests: Optional[List[str]] = None


class StudentProfileCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = None
    age: Optional[int] = None
    date_of_birth: Optional[str] = None
    grade_level: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    bio: Optional[str] = None


@profiles_router.get("/api/instructors")
async def list_instructors():
    try:
        items = wiring.profiles_service().list_instructors()
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@profiles_router.get("/api/profiles/me")
async def get_own_profile(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        profile = wiring.profiles_service().get_profile(actor.user_id)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(profile)


@profiles_router.post("/api/profiles/me/avatar")
async def upload_avatar(request: Request, filename: str):
    """Upload an image (raw body, ≤ 5 MiB) and set it as the caller's avatar."""
    actor, error = require_actor(request)
    if error:
        return error
    body = await request.body()
    content_type = request.headers.get("content-type") or ""
    try:
        result = wiring.profiles_service().upload_avatar(
            actor, filename=filename, body=body, content_type=content_type
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result, status_code=201)


@profiles_router.get("/api/profiles/{profile_id}")
async def get_profile(request: Request, profile_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        profile = wiring.profiles_service().get_profile(profile_id)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(profile)


@profiles_router.patch("/api/profiles/{profile_id}")
async def update_profile(request: Request, profile_id: str, payload: ProfileUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        profile = wiring.profiles_service().update_profile(
            profile_id, actor, payload.model_dump(exclude_unset=True)
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(profile)


@profiles_router.get("/api/students")
async def list_student_profiles(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.profiles_service().list_student_profiles(actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@profiles_router.post("/api/students")
async def create_student_profile(request: Request, payload: StudentProfileCreate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        student = wiring.profiles_service().create_student_profile(actor, payload.model_dump(exclude_none=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(student, status_code=201)
