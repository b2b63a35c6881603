"""Shared helpers for marketplace services (store error wrapping, input normalization)."""

from __future__ import annotations

import functools
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar
from urllib.parse import urlparse

from records.ports import StoreError

from ..errors import OperationError, ValidationError

logger = logging.getLogger("tutorhub.marketplace")

F = TypeVar("F", bound=Callable[..., Any])


def guarded(operation: str) -> Callable[[F], F]:
    """Re-raise record store failures as OperationError, keeping the message."""

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except StoreError as exc:
                logger.error("%s failed: %s: %s", operation, exc.__class__.__name__, exc)
                raise OperationError(str(exc)) from exc

        return wrapper  # type: ignore[return-value]

    return decorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)



def require_text(value: object, code: str, *, max_length: Optional[int] = None) -> str:
    if value is None or not isinstance(value, str):
        raise ValidationError(code)
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(code)
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(code)
    return trimmed


def optional_text(value: object, code: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(code)
    return value.strip()


def is_http_url(value: object) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def optional_url(value: object, code: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not is_http_url(value):
        raise ValidationError(code)
    return str(value).strip()


def parse_instant(value: object, code: str) -> str:
    """Parse an ISO date/datetime into a normalized ISO string."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(code) from exc
    else:
        raise ValidationError(code)
    return parsed.isoformat()


def positive_int(value: object, code: str, *, allow_none: bool = True) -> Optional[int]:
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(code)
    if isinstance(value, bool):
        raise ValidationError(code)
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(code) from exc
    if number < 1:
        raise ValidationError(code)
    return number


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half up (4.25 -> 4.3) instead of Python's half-to-even."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def pick(data: Mapping[str, Any], allowed: Iterable[str]) -> dict:
    """Keep only whitelisted keys."""
    allowed_set = set(allowed)
    return {k: v for k, v in data.items() if k in allowed_set}


__all__ = [
    "guarded",
    "utcnow",
    "require_text",
    "optional_text",
    "is_http_url",
    "optional_url",
    "parse_instant",
    "positive_int",
    "round_half_up",
    "pick",
]
