"""
vdr_admin.auth.roles

Role resolution: identity snapshot -> role tier + delegated scope.

Responsibilities:
- Map an `Identity` (or its absence) to exactly one `RoleTier`.
- Provide the human-facing label of each tier.
"""

from __future__ import annotations

from vdr_admin.auth.models import ADMIN_GROUP, Identity, ResolvedRole, RoleTier

_STANDARD = ResolvedRole(tier=RoleTier.standard, scope_groups=())

ROLE_LABELS: dict[RoleTier, str] = {
    RoleTier.full_admin: "Administrator",
    RoleTier.delegated_admin: "Company Administrator",
    RoleTier.standard: "Regular User",
}


def resolve_role(identity: Identity | None) -> ResolvedRole:
    """
    Pure and deterministic. Membership in the reserved admin group dominates:
    delegated-admin assignments are ignored once full-admin is established.
    A missing identity resolves to the least-privileged tier.
    """

    if identity is None:
        return _STANDARD

    if ADMIN_GROUP in identity.groups:
        return ResolvedRole(tier=RoleTier.full_admin, scope_groups=())

    if identity.delegated_admin_groups:
        return ResolvedRole(
            tier=RoleTier.delegated_admin,
            scope_groups=tuple(sorted(identity.delegated_admin_groups)),
        )

    return _STANDARD


def is_full_admin(identity: Identity | None) -> bool:
    return resolve_role(identity).tier is RoleTier.full_admin


def is_delegated_admin(identity: Identity | None) -> bool:
    return resolve_role(identity).tier is RoleTier.delegated_admin


def role_display(tier: RoleTier) -> str:
    return ROLE_LABELS[tier]
