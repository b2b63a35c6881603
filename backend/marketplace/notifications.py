"""
Notification boundary: invoke named remote functions (e-mail senders).

Why:
    Enrollment confirmations and session cancellations are delivered by
    hosted edge functions (`send-enrollment-email`,
    `send-session-deleted-email`). Delivery is a side effect: it must never
    decide whether the primary operation succeeded.

Behavior:
    - `SupabaseFunctionGateway.invoke` POSTs JSON to
      `{SUPABASE_URL}/functions/v1/{name}` and raises on transport errors or
      non-2xx responses.
    - `dispatch_quietly` wraps any gateway, logs failures under
      `tutorhub.notifications` and returns False instead of raising.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx

logger = logging.getLogger("tutorhub.notifications")

ENROLLMENT_EMAIL = "send-enrollment-email"
SESSION_DELETED_EMAIL = "send-session-deleted-email"

_FUNCTION_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,63}$")


class NotificationGateway(Protocol):
    def invoke(self, function_name: str, payload: Dict[str, Any]) -> None:
        ...


class NullNotificationGateway:
    """Records invocations without sending anything (dev, tests)."""

    def __init__(self) -> None:
        self.sent: List[tuple[str, Dict[str, Any]]] = []

    def invoke(self, function_name: str, payload: Dict[str, Any]) -> None:
        self.sent.append((function_name, dict(payload)))


class SupabaseFunctionGateway:
    """Invoke Supabase edge functions over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        if not base_url:
            raise ValueError("missing_supabase_url")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_env(cls) -> "SupabaseFunctionGateway":
        base = (os.getenv("SUPABASE_URL") or "").strip()
        key = (os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        return cls(base, key)

    def function_url(self, function_name: str) -> str:
        if not _FUNCTION_NAME_RE.match(function_name or ""):
            raise ValueError("invalid_function_name")
        return f"{self._base_url}/functions/v1/{function_name}"

    def invoke(self, function_name: str, payload: Dict[str, Any]) -> None:
        url = self.function_url(function_name)
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        if self._client is not None:
            resp = self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
        else:
            with httpx.Client(timeout=self._timeout, follow_redirects=False) as client:
                resp = client.post(url, json=payload, headers=headers)
        if resp.status_code >= 400:
            raise RuntimeError(f"function_error:{function_name}:{resp.status_code}")


def dispatch_quietly(gateway: Optional[NotificationGateway], function_name: str, payload: Dict[str, Any]) -> bool:
    """Fire-and-forget delivery; never raises."""
    if gateway is None:
        return False
    try:
        gateway.invoke(function_name, payload)
    except Exception as exc:
        logger.warning("notification %s failed: %s", function_name, exc.__class__.__name__)
        return False
    return True


__all__ = [
    "ENROLLMENT_EMAIL",
    "SESSION_DELETED_EMAIL",
    "NotificationGateway",
    "NullNotificationGateway",
    "SupabaseFunctionGateway",
    "dispatch_quietly",
]
