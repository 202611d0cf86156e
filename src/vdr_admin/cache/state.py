"""
vdr_admin.cache.state

Immutable state of one cache entry and the view handed to readers.

Responsibilities:
- `EntryState`: the data-only part of an entry (payload, timers, flags). This is
  what snapshots capture and rollback restores.
- `ResourceView`: what a subscriber renders (data, loading, error).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from typing import Any

from vdr_admin.cache.keys import CacheKey
from vdr_admin.errors import TransientFetchError


@dataclass(frozen=True, slots=True)
class EntryState:
    payload: Any = None
    has_payload: bool = False
    fetched_at: float | None = None
    fresh_until: float = 0.0
    evict_after: float = 0.0
    invalidated: bool = False
    error: TransientFetchError | None = None

    def is_stale(self, now: float) -> bool:
        return self.invalidated or not self.has_payload or now >= self.fresh_until

    def detached(self) -> EntryState:
        # Snapshots must not share payload objects with the live entry.
        return replace(self, payload=copy.deepcopy(self.payload))


EMPTY = EntryState()


@dataclass(frozen=True, slots=True)
class ResourceView:
    key: CacheKey
    data: Any = None
    has_data: bool = False
    is_loading: bool = False
    is_fetching: bool = False
    is_stale: bool = True
    error: TransientFetchError | None = None
    updated_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key.describe(),
            "data": self.data,
            "is_loading": self.is_loading,
            "is_fetching": self.is_fetching,
            "is_stale": self.is_stale,
            "error": None
            if self.error is None
            else {
                "message": self.error.message,
                "status_code": self.error.status_code,
                "is_permission_error": self.error.is_permission_error,
            },
        }
