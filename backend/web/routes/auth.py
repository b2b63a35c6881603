"""
Authentication API routes (delegating to the hosted auth backend).

Why:
    Accounts, passwords and tokens are owned by the auth backend. These routes
    only validate input, pass calls through the AuthGateway and create the
    profile row on sign-up so the rest of the marketplace can join on it.

Notes:
    - Clients send the returned access token as `Authorization: Bearer ...`.
    - Password reset answers 202 for unknown addresses too (no enumeration).
    - ALLOWED_REGISTRATION_DOMAINS optionally restricts sign-up e-mail domains.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from identity_access.auth import AuthError
from identity_access.domain import ALLOWED_ROLES, DEFAULT_ROLE, MIN_PASSWORD_LENGTH
from marketplace.errors import MarketplaceError

from .. import wiring
from .common import bearer_token, error_response, json_private, require_actor

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("tutorhub.web.auth")


class SignUpPayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=256)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: str = DEFAULT_ROLE


class SignInPayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=256)


class PasswordResetPayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    redirect_to: Optional[str] = None


def _parse_allowed_registration_domains(raw: str | None) -> set[str]:
    """Parse a comma-separated list like "@school.org, @example.org"."""
    if not raw:
        return set()
    items = [part.strip().lower() for part in str(raw).split(",")]
    return {item for item in items if item}


def _is_allowed_registration_email(email: str, allowed_domains: set[str]) -> bool:
    """Empty allow-list means no restriction; otherwise compare "@domain"."""
    if not allowed_domains:
        return True
    normalized = (email or "").strip().lower()
    if "@" not in normalized:
        return False
    local, domain = normalized.rsplit("@", 1)
    if not local or not domain:
        return False
    return f"@{domain}" in allowed_domains


def _request_app_base(request: Request) -> str:
    """Browser-facing base URL (APP_BASE_URL, else derived from the request).

    Forwarded headers are honored only when TUTORHUB_TRUST_PROXY=true.
    """
    configured = (os.getenv("APP_BASE_URL") or "").strip().rstrip("/")
    if configured:
        return configured
    trust_proxy = (os.getenv("TUTORHUB_TRUST_PROXY", "false") or "").lower() == "true"
    scheme = (request.url.scheme or "http").lower()
    host = request.url.netloc or request.headers.get("host") or ""
    if trust_proxy:
        xf_proto = (request.headers.get("x-forwarded-proto") or scheme).split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or host).split(",")[0].strip()
        scheme = (xf_proto or scheme).lower()
        host = xf_host or host
    return f"{scheme}://{host}"


def _auth_error(code: str, status_code: int = 400):
    return json_private({"error": "bad_request" if status_code == 400 else "unauthenticated", "detail": code}, status_code)


@auth_router.post("/api/auth/sign-up")
async def sign_up(payload: SignUpPayload):
    """Create an account and its profile row; returns the session token."""
    email = payload.email.strip().lower()
    if "@" not in email:
        return _auth_error("invalid_email")
    if not _is_allowed_registration_email(email, _parse_allowed_registration_domains(os.getenv("ALLOWED_REGISTRATION_DOMAINS"))):
        return _auth_error("invalid_email_domain")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        return _auth_error("weak_password")
    role = payload.role.strip().lower()
    if role not in ALLOWED_ROLES or role == "admin":
        return _auth_error("invalid_role")
    metadata = {"first_name": payload.first_name.strip(), "last_name": payload.last_name.strip(), "role": role}
    try:
        session = wiring.get_auth_gateway().sign_up(email=email, password=payload.password, metadata=metadata)
    except AuthError as exc:
        return _auth_error(exc.code)
    try:
        profile = wiring.profiles_service().register_profile(
            session.user_id,
            email=email,
            first_name=metadata["first_name"],
            last_name=metadata["last_name"],
            role=role,
        )
    except MarketplaceError as exc:
        logger.error("profile creation after sign-up failed: %s", exc.code)
        return error_response(exc)
    body = {"user_id": session.user_id, "access_token": session.access_token, "roles": sorted(session.roles), "profile": profile}
    return json_private(body, status_code=201)


@auth_router.post("/api/auth/sign-in")
async def sign_in(payload: SignInPayload):
    try:
        session = wiring.get_auth_gateway().sign_in(email=payload.email.strip().lower(), password=payload.password)
    except AuthError as exc:
        return _auth_error(exc.code, status_code=401)
    return json_private({"user_id": session.user_id, "access_token": session.access_token, "roles": sorted(session.roles)})


@auth_router.post("/api/auth/sign-out")
async def sign_out(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.get_auth_gateway().sign_out(bearer_token(request))
    except AuthError as exc:
        logger.warning("sign_out failed for actor: %s", exc.code)
        return json_private({"error": "upstream_error"}, status_code=502)
    return json_private({"signed_out": True})


@auth_router.post("/api/auth/password-reset")
async def password_reset(request: Request, payload: PasswordResetPayload):
    redirect_to = payload.redirect_to or f"{_request_app_base(request)}/reset-password"
    try:
        wiring.get_auth_gateway().send_password_reset(payload.email.strip().lower(), redirect_to=redirect_to)
    except AuthError as exc:
        logger.warning("password reset failed: %s", exc.code)
    return json_private({"accepted": True}, status_code=202)


@auth_router.get("/api/auth/me")
async def me(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    return json_private({"user_id": actor.user_id, "roles": sorted(actor.roles), "email": actor.email})
