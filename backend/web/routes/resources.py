"""Course resource API routes (files and links)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

resources_router = APIRouter(tags=["Resources"])


class ResourceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    resource_type: str
    description: Optional[str] = None
    file_url: Optional[str] = None
    link_url: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    is_public: bool = False


class ResourceUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    resource_type: Optional[str] = None
    file_url: Optional[str] = None
    link_url: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    is_public: Optional[bool] = None


class AccessPayload(BaseModel):
    student_profile_id: Optional[str] = None


@resources_router.get("/api/courses/{course_id}/resources")
async def list_course_resources(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.resources_service().list_course_resources(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@resources_router.post("/api/courses/{course_id}/resources")
async def create_resource(request: Request, course_id: str, payload: ResourceCreate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        resource = wiring.resources_service().create_resource(course_id, actor, payload.model_dump(exclude_none=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(resource, status_code=201)


@resources_router.post("/api/courses/{course_id}/resources/upload")
async def upload_resource_file(request: Request, course_id: str, filename: str):
    """Store a raw request body in the course bucket and return its public URL."""
    actor, error = require_actor(request)
    if error:
        return error
    body = await request.body()
    content_type = request.headers.get("content-type") or "application/octet-stream"
    try:
        result = wiring.resources_service().upload_resource_file(
            course_id, actor, filename=filename, body=body, content_type=content_type
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result, status_code=201)


@resources_router.patch("/api/resources/{resource_id}")
async def update_resource(request: Request, resource_id: str, payload: ResourceUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        resource = wiring.resources_service().update_resource(
            resource_id, actor, payload.model_dump(exclude_unset=True)
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(resource)


@resources_router.delete("/api/resources/{resource_id}")
async def delete_resource(request: Request, resource_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.resources_service().delete_resource(resource_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


@resources_router.post("/api/resources/{resource_id}/access")
async def track_resource_access(request: Request, resource_id: str, payload: AccessPayload):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.resources_service().track_resource_access(
            resource_id, actor, student_profile_id=payload.student_profile_id
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private({"tracked": True})


@resources_router.get("/api/instructor/resource-stats")
async def resource_stats(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        stats = wiring.resources_service().resource_stats(actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(stats)
