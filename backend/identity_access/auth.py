"""
Auth boundary: resolve the current actor and delegate account operations.

Why:
    Authentication is owned by the hosted backend. The web layer only needs
    "who is calling" (bearer access token -> ActorContext) plus pass-through
    sign-up / sign-in / sign-out / password reset.

Implementations:
    - SupabaseAuthGateway: duck-typed over `client.auth` (supabase-py).
    - InMemoryAuthGateway: development and tests; opaque random tokens and
      bcrypt password hashes (passlib).

Security:
    Tokens are never logged. Roles are read from user metadata and filtered
    through ALLOWED_ROLES.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from passlib.context import CryptContext

from marketplace.context import ActorContext

from .domain import DEFAULT_ROLE, normalize_roles

logger = logging.getLogger("tutorhub.identity")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthError(Exception):
    """Raised when the auth backend rejects an account operation."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: Optional[str]
    access_token: Optional[str]
    roles: frozenset[str] = field(default_factory=frozenset)
    metadata: Dict[str, Any] = field(default_factory=dict)


class AuthGateway(Protocol):
    def get_current_actor(self, access_token: str) -> Optional[ActorContext]:
        ...

    def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> AuthSession:
        ...

    def sign_in(self, *, email: str, password: str) -> AuthSession:
        ...

    def sign_out(self, access_token: str) -> None:
        ...

    def send_password_reset(self, email: str, *, redirect_to: Optional[str] = None) -> None:
        ...


def _attr(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class SupabaseAuthGateway:
    """AuthGateway over a supabase client's `auth` namespace."""

    def __init__(self, client: Any):
        self._client = client

    @property
    def _auth(self) -> Any:
        auth = getattr(self._client, "auth", None)
        if auth is None:
            raise AuthError("invalid_supabase_client")
        return auth

    @staticmethod
    def _session_from(res: Any) -> AuthSession:
        user = _attr(res, "user")
        session = _attr(res, "session")
        user_id = _attr(user, "id")
        if not user_id:
            raise AuthError("auth_failed")
        metadata = dict(_attr(user, "user_metadata") or {})
        return AuthSession(
            user_id=str(user_id),
            email=_attr(user, "email"),
            access_token=_attr(session, "access_token"),
            roles=normalize_roles(metadata.get("role")),
            metadata=metadata,
        )

    def get_current_actor(self, access_token: str) -> Optional[ActorContext]:
        if not access_token:
            return None
        try:
            res = self._auth.get_user(access_token)
        except Exception as exc:
            logger.info("token rejected: %s", exc.__class__.__name__)
            return None
        user = _attr(res, "user")
        user_id = _attr(user, "id")
        if not user_id:
            return None
        metadata = _attr(user, "user_metadata") or {}
        return ActorContext.of(str(user_id), normalize_roles(metadata.get("role")), _attr(user, "email"))

    def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> AuthSession:
        try:
            res = self._auth.sign_up({"email": email, "password": password, "options": {"data": dict(metadata)}})
        except Exception as exc:
            logger.warning("sign_up failed: %s", exc.__class__.__name__)
            raise AuthError("sign_up_failed") from exc
        return self._session_from(res)

    def sign_in(self, *, email: str, password: str) -> AuthSession:
        try:
            res = self._auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            logger.info("sign_in failed: %s", exc.__class__.__name__)
            raise AuthError("invalid_credentials") from exc
        return self._session_from(res)

    def sign_out(self, access_token: str) -> None:
        admin = getattr(self._auth, "admin", None)
        try:
            if admin is not None and hasattr(admin, "sign_out"):
                admin.sign_out(access_token)
            else:
                self._auth.sign_out()
        except Exception as exc:
            logger.warning("sign_out failed: %s", exc.__class__.__name__)
            raise AuthError("sign_out_failed") from exc

    def send_password_reset(self, email: str, *, redirect_to: Optional[str] = None) -> None:
        options = {"redirect_to": redirect_to} if redirect_to else {}
        auth = self._auth
        try:
            if hasattr(auth, "reset_password_for_email"):
                auth.reset_password_for_email(email, options)
            else:
                auth.reset_password_email(email, options)
        except Exception as exc:
            logger.warning("password reset failed: %s", exc.__class__.__name__)
            raise AuthError("password_reset_failed") from exc


@dataclass
class _Account:
    user_id: str
    email: str
    password_hash: str
    metadata: Dict[str, Any]


class InMemoryAuthGateway:
    """Development/test auth: accounts and opaque tokens held in memory."""

    def __init__(self) -> None:
        self._accounts: Dict[str, _Account] = {}
        self._tokens: Dict[str, ActorContext] = {}
        self.password_resets: list[str] = []

    def issue_token(self, user_id: str, roles: Any = (DEFAULT_ROLE,), email: Optional[str] = None) -> str:
        token = secrets.token_urlsafe(24)
        self._tokens[token] = ActorContext.of(user_id, normalize_roles(roles), email)
        return token

    def get_current_actor(self, access_token: str) -> Optional[ActorContext]:
        return self._tokens.get(access_token or "")

    def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> AuthSession:
        key = (email or "").strip().lower()
        if not key or key in self._accounts:
            raise AuthError("sign_up_failed")
        account = _Account(str(uuid.uuid4()), key, pwd_context.hash(password), dict(metadata))
        self._accounts[key] = account
        roles = normalize_roles(account.metadata.get("role"))
        token = self.issue_token(account.user_id, roles, key)
        return AuthSession(account.user_id, key, token, roles, dict(account.metadata))

    def sign_in(self, *, email: str, password: str) -> AuthSession:
        account = self._accounts.get((email or "").strip().lower())
        if account is None or not pwd_context.verify(password, account.password_hash):
            raise AuthError("invalid_credentials")
        roles = normalize_roles(account.metadata.get("role"))
        token = self.issue_token(account.user_id, roles, account.email)
        return AuthSession(account.user_id, account.email, token, roles, dict(account.metadata))

    def sign_out(self, access_token: str) -> None:
        self._tokens.pop(access_token or "", None)

    def send_password_reset(self, email: str, *, redirect_to: Optional[str] = None) -> None:
        # Unknown addresses are accepted silently to avoid account enumeration.
        self.password_resets.append((email or "").strip().lower())


__all__ = [
    "AuthError",
    "AuthSession",
    "AuthGateway",
    "SupabaseAuthGateway",
    "InMemoryAuthGateway",
]
