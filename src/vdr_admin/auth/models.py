"""
vdr_admin.auth.models

Auth domain models.

Responsibilities:
- Define the document-server identity snapshot (`Identity`).
- Define the role tiers and the resolved role (`RoleTier`, `ResolvedRole`).
- Define the bearer-token caller (`Principal`) injected into endpoints.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ADMIN_GROUP = "admin"


class RoleTier(StrEnum):
    standard = "standard"
    delegated_admin = "delegated-admin"
    full_admin = "full-admin"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def at_least(self, other: RoleTier) -> bool:
        return self.rank >= other.rank


_TIER_RANK = {
    RoleTier.standard: 0,
    RoleTier.delegated_admin: 1,
    RoleTier.full_admin: 2,
}


@dataclass(frozen=True, slots=True)
class Identity:
    """
    One authenticated human as reported by the document server.

    `delegated_admin_groups` are the groups this identity administers as a
    sub-admin; they must be a subset of `groups`.
    """

    id: str
    display_name: str = ""
    email: str = ""
    groups: frozenset[str] = field(default_factory=frozenset)
    delegated_admin_groups: frozenset[str] = field(default_factory=frozenset)
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("identity id must be non-empty")
        stray = self.delegated_admin_groups - self.groups
        if stray:
            raise ValueError(f"delegated-admin groups outside group set: {sorted(stray)}")

    @classmethod
    def build(
        cls,
        *,
        id: str,
        display_name: str = "",
        email: str = "",
        groups: Iterable[str] = (),
        delegated_admin_groups: Iterable[str] = (),
        enabled: bool = True,
    ) -> Identity:
        # Sub-admins are not always members of the groups they manage; fold them in.
        # The reserved admin group is never delegable, so folding cannot promote.
        delegated = frozenset(str(g) for g in delegated_admin_groups) - {ADMIN_GROUP}
        return cls(
            id=id,
            display_name=display_name or id,
            email=email,
            groups=frozenset(str(g) for g in groups) | delegated,
            delegated_admin_groups=delegated,
            enabled=enabled,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "groups": sorted(self.groups),
            "delegated_admin_groups": sorted(self.delegated_admin_groups),
            "enabled": self.enabled,
        }


@dataclass(frozen=True, slots=True)
class ResolvedRole:
    tier: RoleTier
    scope_groups: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Caller of the HTTP surface, decoded from the session bearer token.
    `session_id` (the `sid` claim) selects the server-side dashboard session.
    """

    subject: str
    session_id: str
    tier_at_login: RoleTier = RoleTier.standard


# --- Module Notes -----------------------------------------------------------
# `Principal.tier_at_login` is informational; every authorization
# decision is re-derived from the live `Identity` via the role resolver.
