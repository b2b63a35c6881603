"""
Shared helpers for API routes: actor lookup and error → JSON mapping.

All API responses carry `Cache-Control: private, no-store`; marketplace data
is per-user and must not be cached by intermediaries.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from marketplace.context import ActorContext
from marketplace.errors import (
    ConflictError,
    MarketplaceError,
    NotFoundError,
    OperationError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger("tutorhub.web")


def _private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}


def json_private(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code, headers=_private_no_store())


def bearer_token(request: Request) -> str:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    return token.strip() if scheme.lower() == "bearer" else ""


def current_actor(request: Request) -> Optional[ActorContext]:
    return getattr(request.state, "actor", None)


def require_actor(request: Request) -> Tuple[Optional[ActorContext], Optional[JSONResponse]]:
    actor = current_actor(request)
    if actor is None:
        return None, json_private({"error": "unauthenticated"}, status_code=401)
    return actor, None


def error_response(exc: MarketplaceError) -> JSONResponse:
    """Map a service error to its HTTP status and a stable JSON body."""
    if isinstance(exc, ValidationError):
        return json_private({"error": "bad_request", "detail": exc.code}, status_code=400)
    if isinstance(exc, UnauthorizedError):
        return json_private({"error": "forbidden", "detail": exc.code}, status_code=403)
    if isinstance(exc, NotFoundError):
        return json_private({"error": "not_found", "detail": exc.code}, status_code=404)
    if isinstance(exc, ConflictError):
        return json_private({"error": "conflict", "detail": exc.code}, status_code=409)
    if isinstance(exc, OperationError):
        logger.warning("upstream failure: %s", exc.code)
        return json_private({"error": "upstream_error"}, status_code=502)
    return json_private({"error": "internal_error"}, status_code=500)


__all__ = ["json_private", "bearer_token", "current_actor", "require_actor", "error_response"]
