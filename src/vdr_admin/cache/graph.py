"""
vdr_admin.cache.graph

Invalidation Graph: which cached reads each mutation kind can affect.

Responsibilities:
- Declare, per `MutationKind`, the full list of dependent query views and how
  each view's resource id derives from the mutation params.
- Turn that declaration into concrete `KeyPattern`s for one mutation.

A missing row is a stale-UI bug, not a crash; the table is therefore exhaustive
and the test-suite compares it row by row.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from vdr_admin.cache.keys import KeyPattern, MutationKind, QueryKind, parent_path
from vdr_admin.errors import UnknownResourceKind

Derive = Literal["exact", "parent", "subtree"]


@dataclass(frozen=True, slots=True)
class Dependent:
    """
    `param=None` means every variant of the view. Otherwise the resource id is
    taken from that param: as-is (`exact`), its parent directory (`parent`) or
    every path below it (`subtree`). An absent/empty param value widens to
    every variant.
    """

    query: QueryKind
    param: str | None = None
    derive: Derive = "exact"

    def pattern(self, params: Mapping[str, Any]) -> KeyPattern:
        value = params.get(self.param) if self.param is not None else None
        if value is None or value == "":
            return KeyPattern.for_query(self.query)
        rid = str(value)
        if self.derive == "parent":
            rid = parent_path(rid)
        return KeyPattern.for_query(self.query, rid, subtree=self.derive == "subtree")

    def describe(self) -> str:
        if self.param is None:
            return f"{self.query.value}(*)"
        if self.derive == "exact":
            return f"{self.query.value}({self.param})"
        return f"{self.query.value}({self.derive} of {self.param})"


def every(query: QueryKind) -> Dependent:
    return Dependent(query)


def by(query: QueryKind, param: str) -> Dependent:
    return Dependent(query, param)


def parent_of(query: QueryKind, param: str) -> Dependent:
    return Dependent(query, param, "parent")


def under(query: QueryKind, param: str) -> Dependent:
    return Dependent(query, param, "subtree")


Q = QueryKind
M = MutationKind

_USER_LISTS = (every(Q.user_list), every(Q.user_search))
_GROUP_LISTS = (every(Q.group_list), every(Q.group_search))
_ALL_SHARES = (every(Q.share_list), every(Q.share_detail), every(Q.shares_by_path))
_ALL_FILES = (every(Q.file_list), every(Q.file_properties))

# Membership changes move users between groups: both sides' lists/details/counts.
_MEMBERSHIP = (
    *_USER_LISTS,
    by(Q.user_detail, "user_id"),
    by(Q.user_groups, "user_id"),
    *_GROUP_LISTS,
    by(Q.group_detail, "group_id"),
    every(Q.group_member_counts),
)

_SUBADMIN = (
    *_USER_LISTS,
    by(Q.user_detail, "user_id"),
    by(Q.user_subadmin_groups, "user_id"),
    by(Q.group_detail, "group_id"),
    by(Q.group_subadmins, "group_id"),
)

_USER_PROFILE = (*_USER_LISTS, by(Q.user_detail, "user_id"))

# Group access on a data room changes what mounts appear in users' file trees.
_DATA_ROOM_ACCESS = (
    every(Q.data_room_list),
    by(Q.data_room_detail, "folder_id"),
    *_ALL_FILES,
)

_SHARE_CHANGE = (
    every(Q.share_list),
    by(Q.share_detail, "share_id"),
    by(Q.shares_by_path, "path"),
)


DEPENDENTS: dict[MutationKind, tuple[Dependent, ...]] = {
    # --- users
    M.create_user: (
        *_USER_LISTS,
        by(Q.user_detail, "user_id"),
        by(Q.user_groups, "user_id"),
        by(Q.user_subadmin_groups, "user_id"),
        *_GROUP_LISTS,
        every(Q.group_detail),
        every(Q.group_member_counts),
        every(Q.group_subadmins),
    ),
    M.update_user: _USER_PROFILE,
    M.enable_user: _USER_PROFILE,
    M.disable_user: _USER_PROFILE,
    M.delete_user: (
        *_USER_LISTS,
        by(Q.user_detail, "user_id"),
        by(Q.user_groups, "user_id"),
        by(Q.user_subadmin_groups, "user_id"),
        *_GROUP_LISTS,
        every(Q.group_detail),
        every(Q.group_member_counts),
        every(Q.group_subadmins),
    ),
    M.add_user_to_group: _MEMBERSHIP,
    M.remove_user_from_group: _MEMBERSHIP,
    M.promote_subadmin: _SUBADMIN,
    M.demote_subadmin: _SUBADMIN,
    # --- groups
    M.create_group: (*_GROUP_LISTS, by(Q.group_detail, "group_id")),
    M.rename_group: (*_GROUP_LISTS, by(Q.group_detail, "group_id")),
    M.delete_group: (
        *_GROUP_LISTS,
        by(Q.group_detail, "group_id"),
        every(Q.group_member_counts),
        by(Q.group_subadmins, "group_id"),
        every(Q.data_room_list),
        every(Q.data_room_detail),
        *_USER_LISTS,
        every(Q.user_detail),
        every(Q.user_groups),
        every(Q.user_subadmin_groups),
        *_ALL_SHARES,
        *_ALL_FILES,
    ),
    # --- data rooms
    M.create_data_room: (every(Q.data_room_list), every(Q.file_list)),
    M.update_data_room: _DATA_ROOM_ACCESS,
    M.delete_data_room: (*_DATA_ROOM_ACCESS, *_ALL_SHARES),
    M.add_data_room_group: _DATA_ROOM_ACCESS,
    M.set_data_room_group_permissions: _DATA_ROOM_ACCESS,
    M.remove_data_room_group: _DATA_ROOM_ACCESS,
    # --- shares
    M.create_share: (every(Q.share_list), by(Q.shares_by_path, "path")),
    M.update_share: _SHARE_CHANGE,
    M.delete_share: _SHARE_CHANGE,
    # --- files (metadata only)
    M.create_folder: (every(Q.file_list), parent_of(Q.file_properties, "path")),
    M.delete_item: (
        every(Q.file_list),
        under(Q.file_properties, "path"),
        parent_of(Q.file_properties, "path"),
        every(Q.share_list),
        every(Q.share_detail),
        under(Q.shares_by_path, "path"),
    ),
    M.move_item: (
        every(Q.file_list),
        under(Q.file_properties, "source"),
        parent_of(Q.file_properties, "source"),
        under(Q.file_properties, "destination"),
        parent_of(Q.file_properties, "destination"),
        every(Q.share_list),
        every(Q.share_detail),
        under(Q.shares_by_path, "source"),
        under(Q.shares_by_path, "destination"),
    ),
    M.copy_item: (
        every(Q.file_list),
        under(Q.file_properties, "destination"),
        parent_of(Q.file_properties, "destination"),
    ),
}


def dependents_of(kind: MutationKind | str) -> tuple[Dependent, ...]:
    try:
        return DEPENDENTS[MutationKind(kind)]
    except (KeyError, ValueError) as e:
        raise UnknownResourceKind(f"no invalidation rule for {kind!r}") from e


def patterns_for(kind: MutationKind | str, params: Mapping[str, Any]) -> list[KeyPattern]:
    # De-duplicate while keeping declaration order.
    return list(dict.fromkeys(d.pattern(params) for d in dependents_of(kind)))


# --- Module Notes -----------------------------------------------------------
# Deleting a group reaches far: it disappears from every user's membership,
# from data-room ACLs, and from shares granted to it.
