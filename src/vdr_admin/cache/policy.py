"""
vdr_admin.cache.policy

Freshness and retention windows per query view.

Identity-ish data (user details) tolerates minutes of staleness; live file
listings and search results do not.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from vdr_admin.cache.keys import QueryKind
from vdr_admin.settings import Settings

MINUTE = 60.0


@dataclass(frozen=True, slots=True)
class CachePolicy:
    # Seconds a fetched payload is served without refetching.
    fresh_seconds: float
    # Seconds an entry without listeners is kept before lazy eviction.
    retain_seconds: float

    def __post_init__(self) -> None:
        if self.fresh_seconds < 0 or self.retain_seconds < 0:
            raise ValueError("cache windows must be non-negative")


Q = QueryKind

DEFAULT_POLICIES: dict[QueryKind, CachePolicy] = {
    Q.user_list: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.user_detail: CachePolicy(5 * MINUTE, 10 * MINUTE),
    Q.user_search: CachePolicy(30, 2 * MINUTE),
    Q.user_groups: CachePolicy(5 * MINUTE, 10 * MINUTE),
    Q.user_subadmin_groups: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.group_list: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.group_detail: CachePolicy(1 * MINUTE, 3 * MINUTE),
    Q.group_search: CachePolicy(30, 2 * MINUTE),
    Q.group_member_counts: CachePolicy(1 * MINUTE, 3 * MINUTE),
    Q.group_subadmins: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.data_room_list: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.data_room_detail: CachePolicy(5 * MINUTE, 10 * MINUTE),
    Q.share_list: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.share_detail: CachePolicy(2 * MINUTE, 5 * MINUTE),
    Q.shares_by_path: CachePolicy(1 * MINUTE, 3 * MINUTE),
    Q.file_list: CachePolicy(30, 2 * MINUTE),
    Q.file_properties: CachePolicy(1 * MINUTE, 3 * MINUTE),
    Q.audit_log: CachePolicy(1 * MINUTE, 5 * MINUTE),
}


class PolicyTable:
    def __init__(
        self,
        overrides: Mapping[QueryKind, CachePolicy] | None = None,
        *,
        default: CachePolicy | None = None,
        base: Mapping[QueryKind, CachePolicy] | None = None,
    ) -> None:
        self._policies = {**(DEFAULT_POLICIES if base is None else base), **(overrides or {})}
        self._default = default or CachePolicy(5 * MINUTE, 10 * MINUTE)

    @classmethod
    def from_settings(cls, settings: Settings) -> PolicyTable:
        return cls(
            default=CachePolicy(settings.default_fresh_seconds, settings.default_retain_seconds),
        )

    @property
    def default(self) -> CachePolicy:
        return self._default

    def for_query(self, query: QueryKind) -> CachePolicy:
        return self._policies.get(query, self._default)


# --- Module Notes -----------------------------------------------------------
# Every view currently declares its own window; `default` covers views added later
# and tests that pass `base={}`.
