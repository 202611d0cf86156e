"""
vdr_admin.auth.gate

Permission Gate: allow/deny decisions against a resolved capability set.

Responsibilities:
- Normalize the accepted requirement shapes (name, `name:scope`, any-of list,
  tier requirement) into one `Requirement`.
- Evaluate tier first, then any-of capability membership.
- Explain a denial in human terms without exposing the capability catalog.

The gate is pure: the same requirement and capability set always produce an
equal result, so it is safe to call on every request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from vdr_admin.auth.capabilities import Capability, CapabilitySet, parse_capability
from vdr_admin.auth.models import RoleTier
from vdr_admin.auth.roles import role_display


class ResourceType(StrEnum):
    users = "users"
    groups = "groups"
    data_rooms = "data-rooms"
    documents = "documents"
    audit = "audit"
    profile = "profile"
    system = "system"


# Substring -> resource type, first match wins.
_RESOURCE_HINTS: tuple[tuple[str, ResourceType], ...] = (
    ("data-room", ResourceType.data_rooms),
    ("group", ResourceType.groups),
    ("user", ResourceType.users),
    ("document", ResourceType.documents),
    ("audit", ResourceType.audit),
    ("profile", ResourceType.profile),
)

_CONTEXT: dict[ResourceType, str] = {
    ResourceType.users: "managing users",
    ResourceType.groups: "managing groups",
    ResourceType.data_rooms: "managing data rooms",
    ResourceType.documents: "working with documents",
    ResourceType.audit: "viewing audit logs",
    ResourceType.profile: "editing your profile",
    ResourceType.system: "system administration",
}


def classify(capability: Capability) -> ResourceType:
    if capability in (Capability.admin, Capability.user):
        return ResourceType.system
    for hint, resource in _RESOURCE_HINTS:
        if hint in capability.value:
            return resource
    return ResourceType.system


@dataclass(frozen=True, slots=True)
class Requirement:
    """
    `any_of` holds `(capability, scope)` pairs; an empty tuple means "no
    capability requirement". `min_tier` is checked before `any_of`.
    """

    any_of: tuple[tuple[Capability, str | None], ...] = ()
    min_tier: RoleTier | None = None
    resource: ResourceType | None = None

    @classmethod
    def of(
        cls,
        *capabilities: str | Capability,
        min_tier: RoleTier | None = None,
        resource: ResourceType | None = None,
    ) -> Requirement:
        return cls(
            any_of=tuple(parse_capability(c) for c in capabilities),
            min_tier=min_tier,
            resource=resource,
        )

    @property
    def resource_type(self) -> ResourceType:
        if self.resource is not None:
            return self.resource
        if self.any_of:
            return classify(self.any_of[0][0])
        return ResourceType.system

    def describe(self) -> str:
        parts: list[str] = []
        if self.min_tier is not None:
            parts.append(f"tier>={self.min_tier.value}")
        if self.any_of:
            names = [c.value if s is None else f"{c.value}:{s}" for c, s in self.any_of]
            parts.append(" | ".join(names))
        return " & ".join(parts) or "none"


REQUIRE_FULL_ADMIN = Requirement(min_tier=RoleTier.full_admin)
REQUIRE_DELEGATED_OR_ABOVE = Requirement(min_tier=RoleTier.delegated_admin)

Required = str | Capability | Sequence[str | Capability] | Requirement


def as_requirement(required: Required) -> Requirement:
    if isinstance(required, Requirement):
        return required
    if isinstance(required, str | Capability):
        return Requirement.of(required)
    caps = list(required)
    if not caps:
        raise ValueError("any-of requirement must name at least one capability")
    return Requirement.of(*caps)


@dataclass(frozen=True, slots=True)
class Suggestion:
    title: str
    description: str
    action: str


@dataclass(frozen=True, slots=True)
class DenialReason:
    failed: Literal["tier", "capability"]
    required: str
    current_tier: RoleTier
    resource_type: ResourceType
    message: str
    suggestions: tuple[Suggestion, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "failed": self.failed,
            "required": self.required,
            "current_tier": self.current_tier.value,
            "resource_type": self.resource_type.value,
            "message": self.message,
            "suggestions": [
                {"title": s.title, "description": s.description, "action": s.action}
                for s in self.suggestions
            ],
        }


@dataclass(frozen=True, slots=True)
class Allow:
    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Deny:
    reason: DenialReason

    def __bool__(self) -> bool:
        return False


# Denials are values; nothing in the core raises them.
AuthorizationDenied = Deny

ALLOW = Allow()


def _suggestions(tier: RoleTier, context: str) -> tuple[Suggestion, ...]:
    if tier is RoleTier.standard:
        return (
            Suggestion(
                "Request Access",
                f"Contact your administrator to request permissions for {context}",
                "contact_admin",
            ),
            Suggestion(
                "Check Available Features",
                "Review what features are available with your current permissions",
                "view_permissions",
            ),
        )
    if tier is RoleTier.delegated_admin:
        return (
            Suggestion(
                "Check Group Access",
                "Ensure you have management rights for the relevant groups",
                "check_groups",
            ),
            Suggestion("Contact Admin", "This action may require full admin privileges", "contact_admin"),
        )
    return (
        Suggestion("Refresh Session", "Try refreshing your session or logging in again", "refresh_session"),
        Suggestion("Check System Status", "Verify that the system is functioning normally", "check_system"),
    )


def _deny(
    *,
    failed: Literal["tier", "capability"],
    requirement: Requirement,
    tier: RoleTier,
) -> Deny:
    resource_type = requirement.resource_type
    context = _CONTEXT[resource_type]
    if failed == "tier" and requirement.min_tier is not None:
        message = (
            f"{role_display(requirement.min_tier)} privileges are required for {context}; "
            f"you are signed in as {role_display(tier)}."
        )
    elif tier is RoleTier.standard:
        message = f"You don't have permission for {context}."
    elif tier is RoleTier.delegated_admin:
        message = f"Limited access for {context}."
    else:
        message = f"Permission denied for {context}."
    return Deny(
        reason=DenialReason(
            failed=failed,
            required=requirement.describe(),
            current_tier=tier,
            resource_type=resource_type,
            message=message,
            suggestions=_suggestions(tier, context),
        )
    )


def explain_forbidden(tier: RoleTier, resource_type: ResourceType) -> DenialReason:
    """Wording for a 403 the document server returned on a read the gate did not guard."""

    return _deny(
        failed="capability",
        requirement=Requirement(resource=resource_type),
        tier=tier,
    ).reason


def check(required: Required, capabilities: CapabilitySet) -> Allow | Deny:
    requirement = as_requirement(required)
    tier = capabilities.tier

    if requirement.min_tier is not None and not tier.at_least(requirement.min_tier):
        return _deny(failed="tier", requirement=requirement, tier=tier)

    if requirement.any_of and not any(capabilities.has(c, s) for c, s in requirement.any_of):
        return _deny(failed="capability", requirement=requirement, tier=tier)

    return ALLOW


# --- Module Notes -----------------------------------------------------------
# `resource_type` only selects wording. Scoped checks (`edit-user:finance`) are the
# security decision and are carried verbatim in `DenialReason.required`.
