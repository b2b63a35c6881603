"""
Auth gateways: in-memory accounts and the Supabase `client.auth` adapter.
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from identity_access.auth import AuthError, InMemoryAuthGateway, SupabaseAuthGateway, pwd_context
from identity_access.domain import normalize_roles


def test_normalize_roles_filters_unknown_values():
    assert normalize_roles("Instructor") == frozenset({"instructor"})
    assert normalize_roles(["student", "wizard", " parent "]) == frozenset({"student", "parent"})
    assert normalize_roles(None) == frozenset()
    assert normalize_roles(42) == frozenset()


def test_in_memory_sign_up_sign_in_and_out():
    gateway = InMemoryAuthGateway()
    session = gateway.sign_up(email="New@Example.org", password="secret-pass", metadata={"role": "parent"})
    assert session.email == "new@example.org"
    assert session.roles == frozenset({"parent"})
    actor = gateway.get_current_actor(session.access_token)
    assert actor.user_id == session.user_id
    assert actor.is_parent

    with pytest.raises(AuthError):
        gateway.sign_up(email="new@example.org", password="x" * 10, metadata={})
    with pytest.raises(AuthError) as exc:
        gateway.sign_in(email="new@example.org", password="wrong-pass")
    assert exc.value.code == "invalid_credentials"

    again = gateway.sign_in(email="NEW@example.org", password="secret-pass")
    assert again.user_id == session.user_id
    gateway.sign_out(again.access_token)
    assert gateway.get_current_actor(again.access_token) is None
    assert gateway.get_current_actor("") is None


def test_in_memory_accounts_store_bcrypt_hashes_only():
    gateway = InMemoryAuthGateway()
    gateway.sign_up(email="hash@example.org", password="secret-pass", metadata={})
    stored = gateway._accounts["hash@example.org"].password_hash
    assert stored != "secret-pass"
    assert stored.startswith("$2b$")
    assert pwd_context.verify("secret-pass", stored)
    assert not pwd_context.verify("secret-pasS", stored)


def test_in_memory_password_reset_accepts_unknown_addresses():
    gateway = InMemoryAuthGateway()
    gateway.send_password_reset(" Someone@Example.org ")
    assert gateway.password_resets == ["someone@example.org"]


class _FakeAuth:
    def __init__(self):
        self.calls = []
        self.admin = SimpleNamespace(sign_out=lambda token: self.calls.append(("admin.sign_out", token)))

    def get_user(self, token):
        if token != "good":
            raise RuntimeError("invalid JWT")
        user = SimpleNamespace(id="u-1", email="kid@example.org", user_metadata={"role": "student"})
        return SimpleNamespace(user=user)

    def sign_up(self, payload):
        self.calls.append(("sign_up", payload))
        user = {"id": "u-2", "email": payload["email"], "user_metadata": payload["options"]["data"]}
        return {"user": user, "session": {"access_token": "tok"}}

    def sign_in_with_password(self, payload):
        raise RuntimeError("Invalid login credentials")

    def reset_password_for_email(self, email, options):
        self.calls.append(("reset", email, options))


def test_supabase_gateway_maps_users_and_errors():
    auth = _FakeAuth()
    gateway = SupabaseAuthGateway(SimpleNamespace(auth=auth))
    actor = gateway.get_current_actor("good")
    assert actor.user_id == "u-1"
    assert actor.roles == frozenset({"student"})
    assert gateway.get_current_actor("bad") is None

    session = gateway.sign_up(email="t@example.org", password="pw12345678", metadata={"role": "instructor"})
    assert session.user_id == "u-2"
    assert session.access_token == "tok"
    assert session.roles == frozenset({"instructor"})
    assert auth.calls[0][1]["options"]["data"] == {"role": "instructor"}

    with pytest.raises(AuthError) as exc:
        gateway.sign_in(email="t@example.org", password="nope")
    assert exc.value.code == "invalid_credentials"

    gateway.sign_out("tok")
    gateway.send_password_reset("t@example.org", redirect_to="https://app.example.org/reset")
    assert ("admin.sign_out", "tok") in auth.calls
    assert auth.calls[-1] == ("reset", "t@example.org", {"redirect_to": "https://app.example.org/reset"})
