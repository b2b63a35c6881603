"""Acting user passed explicitly into every service call."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class ActorContext:
    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)
    email: Optional[str] = None

    @classmethod
    def of(cls, user_id: str, roles: Iterable[str] = (), email: Optional[str] = None) -> "ActorContext":
        return cls(user_id=str(user_id), roles=frozenset(r for r in roles if r), email=email)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_instructor(self) -> bool:
        return self.has_role("instructor")

    @property
    def is_parent(self) -> bool:
        return self.has_role("parent")


__all__ = ["ActorContext"]
