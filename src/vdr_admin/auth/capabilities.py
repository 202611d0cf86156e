"""
vdr_admin.auth.capabilities

Capability catalog and capability-set derivation.

Responsibilities:
- Enumerate every checkable capability (`Capability`).
- Hold the static bundles granted per role tier and per well-known group.
- Derive a `CapabilitySet` from a resolved role and raw group memberships.

Permission model of the document server:
- Administrators (members of `admin`) can create, edit and delete users, groups
  and data rooms.
- Sub-admins (delegated admins) are limited to the groups they manage: they can
  edit existing users and group membership there, and manage the data rooms
  assigned to those groups. They can NOT create or delete users, groups or data
  rooms. `manage-users` for a sub-admin therefore means "edit", never "create".
- Everyone else gets basic document operations.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from vdr_admin.auth.models import Identity, RoleTier
from vdr_admin.auth.roles import resolve_role


class Capability(StrEnum):
    # System
    admin = "admin"
    user = "user"
    configure_system = "configure-system"
    manage_apps = "manage-apps"

    # Users
    create_user = "create-user"
    edit_user = "edit-user"
    manage_users = "manage-users"
    invite_user = "invite-user"
    delete_user = "delete-user"

    # Groups
    create_group = "create-group"
    edit_group_members = "edit-group-members"
    manage_groups = "manage-groups"
    view_groups = "view-groups"
    delete_group = "delete-group"

    # Data rooms (group folders)
    create_data_room = "create-data-room"
    edit_data_room = "edit-data-room"
    manage_data_rooms = "manage-data-rooms"
    delete_data_room = "delete-data-room"
    write_data_room = "write-data-room"
    read_data_room = "read-data-room"

    # Documents
    upload_document = "upload-document"
    download_document = "download-document"
    delete_document = "delete-document"
    view_document = "view-document"
    edit_document = "edit-document"

    # Audit, roles, profile
    view_audit = "view-audit"
    export_audit = "export-audit"
    manage_roles = "manage-roles"
    edit_profile = "edit-profile"


C = Capability


@dataclass(frozen=True, slots=True)
class Bundle:
    """Global grants plus grants issued once per delegated scope group."""

    global_caps: frozenset[Capability]
    scoped_caps: frozenset[Capability] = frozenset()


# =====================================================
# TIER BUNDLES
# =====================================================
TIER_BUNDLES: dict[RoleTier, Bundle] = {
    # Full access; every capability is global.
    RoleTier.full_admin: Bundle(
        global_caps=frozenset(
            {
                C.admin, C.configure_system, C.manage_apps,
                C.create_user, C.edit_user, C.delete_user, C.manage_users, C.invite_user,
                C.create_group, C.edit_group_members, C.delete_group, C.manage_groups,
                C.view_groups,
                C.create_data_room, C.edit_data_room, C.delete_data_room,
                C.manage_data_rooms, C.write_data_room, C.read_data_room,
                C.upload_document, C.download_document, C.delete_document,
                C.edit_document, C.view_document,
                C.view_audit, C.export_audit, C.manage_roles,
                C.edit_profile, C.user,
            }
        ),
    ),
    # Scoped to managed groups; no create/delete of users, groups or data rooms.
    RoleTier.delegated_admin: Bundle(
        global_caps=frozenset(
            {
                C.upload_document, C.download_document, C.view_document,
                C.view_audit,
            }
        ),
        scoped_caps=frozenset(
            {
                C.edit_user, C.manage_users, C.invite_user,
                C.view_groups, C.edit_group_members,
                C.edit_data_room, C.manage_data_rooms,
                C.write_data_room, C.read_data_room,
            }
        ),
    ),
    RoleTier.standard: Bundle(global_caps=frozenset()),
}

# =====================================================
# GROUP BUNDLES (added regardless of tier)
# =====================================================
GROUP_BUNDLES: dict[str, frozenset[Capability]] = {
    "managers": frozenset(
        {
            C.write_data_room, C.read_data_room, C.invite_user,
            C.upload_document, C.download_document, C.edit_document,
            C.view_audit,
        }
    ),
    "editors": frozenset({C.edit_document, C.upload_document}),
    "viewers": frozenset({C.view_document}),
}

# =====================================================
# BASELINE (every tier, including standard)
# =====================================================
STANDARD_BUNDLE: frozenset[Capability] = frozenset(
    {
        C.user,
        C.read_data_room,
        C.view_document, C.download_document, C.upload_document,
        C.edit_profile,
    }
)


def parse_capability(text: str | Capability) -> tuple[Capability, str | None]:
    """
    `"edit-user"` -> (edit-user, None); `"edit-user:finance"` -> (edit-user, "finance").
    Unknown names raise ValueError.
    """

    if isinstance(text, Capability):
        return text, None
    name, sep, scope = str(text).partition(":")
    cap = Capability(name.strip())
    if sep and not scope.strip():
        raise ValueError(f"empty scope in capability {text!r}")
    return cap, (scope.strip() or None)


@dataclass(frozen=True, slots=True, order=True)
class Grant:
    capability: Capability
    scope: str | None = None

    def __str__(self) -> str:
        if self.scope is None:
            return self.capability.value
        return f"{self.capability.value}:{self.scope}"


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    tier: RoleTier
    scope_groups: tuple[str, ...]
    grants: frozenset[Grant]

    def has(self, capability: str | Capability, scope: str | None = None) -> bool:
        """
        A global grant satisfies every scope. Without a `scope`, any scoped grant
        of the capability is enough (e.g. a sub-admin "can edit users" somewhere).
        """

        cap, parsed_scope = parse_capability(capability)
        scope = scope if scope is not None else parsed_scope
        if Grant(cap) in self.grants:
            return True
        if scope is None:
            return any(g.capability is cap for g in self.grants)
        return Grant(cap, scope) in self.grants

    def scopes_for(self, capability: str | Capability) -> frozenset[str] | None:
        """None when the capability is held globally; otherwise the scope groups."""

        cap, _ = parse_capability(capability)
        if Grant(cap) in self.grants:
            return None
        return frozenset(g.scope for g in self.grants if g.capability is cap and g.scope)

    def issuperset(self, other: CapabilitySet) -> bool:
        return all(self.has(g.capability, g.scope) for g in other.grants)

    def names(self) -> list[str]:
        return [str(g) for g in sorted(self.grants, key=lambda g: (g.capability.value, g.scope or ""))]

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, str):
            return False
        return self.has(item)

    def __iter__(self) -> Iterator[Grant]:
        return iter(self.grants)

    def __len__(self) -> int:
        return len(self.grants)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "scope_groups": list(self.scope_groups),
            "capabilities": self.names(),
        }


def derive_capabilities(
    tier: RoleTier,
    scope_groups: Iterable[str],
    group_memberships: Iterable[str],
) -> CapabilitySet:
    """
    Union of: tier bundle (scoped part once per scope group), group bundles for
    the identity's memberships, and the standard baseline. Nothing is ever
    subtracted.
    """

    scopes = tuple(sorted(dict.fromkeys(scope_groups)))
    memberships = frozenset(group_memberships)
    grants: set[Grant] = set()

    bundle = TIER_BUNDLES[tier]
    grants.update(Grant(c) for c in bundle.global_caps)
    for scope in scopes:
        grants.update(Grant(c, scope) for c in bundle.scoped_caps)

    for group, caps in GROUP_BUNDLES.items():
        if group in memberships:
            grants.update(Grant(c) for c in caps)

    grants.update(Grant(c) for c in STANDARD_BUNDLE)

    return CapabilitySet(tier=tier, scope_groups=scopes, grants=frozenset(grants))


def capabilities_for(identity: Identity | None) -> CapabilitySet:
    role = resolve_role(identity)
    groups = identity.groups if identity is not None else frozenset()
    return derive_capabilities(role.tier, role.scope_groups, groups)


# --- Module Notes -----------------------------------------------------------
# The delegated-admin asymmetry mirrors the document server's own provisioning
# rules; widening the delegated bundle here would only produce UI that the server
# later rejects with 403.
