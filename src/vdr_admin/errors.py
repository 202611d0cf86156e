"""
vdr_admin.errors

Typed failures of the authorization and cache-consistency core.

Responsibilities:
- Describe remote transport failures (`RemoteCallError`).
- Describe failed reads (`TransientFetchError`) and failed writes (`MutationFailed`)
  as values the caller can render, retry or ignore.
- Mark the "no identity loaded" condition (`IdentityUnavailable`).
- Mark programmer errors (`UnknownResourceKind`).

`AuthorizationDenied` is the `Deny` value of `vdr_admin.auth.gate`; it is never raised.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vdr_admin.cache.keys import CacheKey

HTTP_FORBIDDEN = 403
HTTP_UNAUTHORIZED = 401


@dataclass(eq=False)
class RemoteCallError(Exception):
    """
    Raised by resource clients when the document server call fails.

    `status_code` is None for network-level failures (no response at all).
    """

    message: str
    status_code: int | None = None
    ocs_status: int | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN)


@dataclass(frozen=True, slots=True)
class TransientFetchError:
    """
    A remote read failed. The cache entry keeps its last-known-good payload and
    exposes this error next to it.
    """

    key: CacheKey
    message: str
    status_code: int | None = None

    @classmethod
    def from_remote(cls, key: CacheKey, err: RemoteCallError) -> TransientFetchError:
        return cls(key=key, message=err.message, status_code=err.status_code)

    @property
    def is_permission_error(self) -> bool:
        if self.status_code == HTTP_FORBIDDEN:
            return True
        text = self.message.lower()
        return any(s in text for s in ("permission", "access denied", "forbidden"))


@dataclass(eq=False)
class MutationFailed(Exception):
    """
    A remote write failed and every optimistically patched key was restored.

    Delivered inside `RolledBack` and to the notification sink; the coordinator
    does not raise it.
    """

    kind: str
    message: str
    status_code: int | None = None
    reverted_keys: tuple[CacheKey, ...] = ()
    restored_values: Mapping[CacheKey, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.kind} failed: {self.message}"

    @property
    def is_permission_error(self) -> bool:
        return self.status_code == HTTP_FORBIDDEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "status_code": self.status_code,
            "reverted_keys": [k.describe() for k in self.reverted_keys],
        }


class IdentityUnavailable(Exception):
    """No identity has been loaded (not logged in yet, or logged out)."""


class UnknownResourceKind(LookupError):
    """A resource kind, query view or mutation kind has no registered handler."""


# --- Module Notes -----------------------------------------------------------
# Only `UnknownResourceKind` (and validation errors on params) should ever escape
# the core as exceptions; every expected failure mode travels as a value.
