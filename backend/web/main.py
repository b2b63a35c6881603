"TutorHub API"
from __future__ import annotations

import logging
import os
import re
import sys
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config as _cfg
from . import wiring
from .routes.auth import auth_router
from .routes.common import bearer_token
from .routes.courses import courses_router
from .routes.enrollments import enrollments_router
from .routes.homework import homework_router
from .routes.profiles import profiles_router
from .routes.ratings import ratings_router
from .routes.resources import resources_router
from .routes.sessions import sessions_router


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via TUTORHUB_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("TUTORHUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("tutorhub.web")

app = FastAPI(title="TutorHub", description="Course marketplace API", version="0.1.0")

for _router in (
    auth_router,
    courses_router,
    sessions_router,
    enrollments_router,
    homework_router,
    resources_router,
    ratings_router,
    profiles_router,
):
    app.include_router(_router)

# --- Auth Helpers & Middleware --------------------------------------------------

_PUBLIC_POST_PATHS = frozenset({"/api/auth/sign-up", "/api/auth/sign-in", "/api/auth/password-reset"})
_PUBLIC_GET_PATTERNS = (
    re.compile(r"^/api/courses/?$"),
    re.compile(r"^/api/courses/[^/]+/?$"),
    re.compile(r"^/api/courses/[^/]+/rating/?$"),
    re.compile(r"^/api/instructors/?$"),
)


def _is_public_path(method: str, path: str) -> bool:
    if path in ("/health", "/docs", "/openapi.json"):
        return True
    if not path.startswith("/api/"):
        return True
    if method == "POST" and path in _PUBLIC_POST_PATHS:
        return True
    if method in ("GET", "HEAD"):
        return any(p.match(path) for p in _PUBLIC_GET_PATTERNS)
    return False


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Resolve the bearer token into `request.state.actor` (or None).

    Public catalog and auth paths pass without an actor; every other /api/
    path gets a 401 JSON response.
    """
    token = bearer_token(request)
    actor = None
    if token:
        try:
            actor = wiring.get_auth_gateway().get_current_actor(token)
        except Exception as exc:
            logger.warning("Auth gateway lookup failed: %s", exc.__class__.__name__)
    request.state.actor = actor
    if actor is None and not _is_public_path(request.method, request.url.path):
        headers = {"Cache-Control": "private, no-store", "Vary": "Authorization"}
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)
    return await call_next(request)

# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # Browser uploads go straight to the storage host; allow it in connect-src.
    connect_src = "'self'"
    pub = (os.getenv("SUPABASE_URL") or "").strip()
    parsed = urlparse(pub) if pub else None
    if parsed and parsed.scheme and parsed.netloc:
        connect_src += f" {parsed.scheme}://{parsed.netloc}"
    response.headers.setdefault(
        "Content-Security-Policy",
        f"default-src 'none'; frame-ancestors 'none'; connect-src {connect_src};",
    )
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    if _cfg.is_production():
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(RequestValidationError)
async def _invalid_payload(request: Request, exc: RequestValidationError):
    first = (exc.errors() or [{}])[0]
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        {"error": "bad_request", "detail": f"invalid_{field}"},
        status_code=400,
        headers={"Cache-Control": "private, no-store"},
    )


@app.get("/health")
async def health():
    return {"status": "healthy", "record_store": _cfg.record_store_backend()}
