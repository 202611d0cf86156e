"""
vdr_admin.cache.reducers

Optimistic reducers: predict the post-mutation value of a cached payload.

Why reducers:
- The dashboard shows the effect of a write before the server confirms it.
- A reducer is pure: it returns a new payload (or the same object when nothing
  changes) and never mutates its input, so snapshots stay exact.

Every reducer has the signature `(payload, params) -> payload`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from vdr_admin.cache.keys import normalize_path

Reducer = Callable[[Any, Mapping[str, Any]], Any]


def _replace_in(
    payload: Any,
    list_field: str,
    match: Callable[[dict[str, Any]], bool],
    update: Callable[[dict[str, Any]], dict[str, Any]],
) -> Any:
    if not isinstance(payload, dict) or not isinstance(payload.get(list_field), list):
        return payload
    changed = False
    items: list[Any] = []
    for item in payload[list_field]:
        if isinstance(item, dict) and match(item):
            items.append(update(item))
            changed = True
        else:
            items.append(item)
    return {**payload, list_field: items} if changed else payload


def _remove_from(payload: Any, list_field: str, match: Callable[[Any], bool]) -> Any:
    if not isinstance(payload, dict) or not isinstance(payload.get(list_field), list):
        return payload
    kept = [item for item in payload[list_field] if not match(item)]
    removed = len(payload[list_field]) - len(kept)
    if not removed:
        return payload
    out = {**payload, list_field: kept}
    if isinstance(payload.get("total"), int):
        out["total"] = max(0, payload["total"] - removed)
    return out


def _merge(item: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    present = {k: v for k, v in updates.items() if v is not None}
    return {**item, **present} if present else item


def _with_id(field: str, value: Any) -> Callable[[Any], bool]:
    return lambda item: isinstance(item, dict) and str(item.get(field)) == str(value)


# =====================================================
# GROUPS
# =====================================================
def rename_group(payload: Any, params: Mapping[str, Any]) -> Any:
    """Detail payloads and list/search rows both carry `display_name`."""

    gid, name = params["group_id"], params["display_name"]
    if isinstance(payload, dict) and payload.get("id") == gid and "groups" not in payload:
        return payload if payload.get("display_name") == name else {**payload, "display_name": name}
    return _replace_in(payload, "groups", _with_id("id", gid), lambda g: {**g, "display_name": name})


def remove_group(payload: Any, params: Mapping[str, Any]) -> Any:
    return _remove_from(payload, "groups", _with_id("id", params["group_id"]))


# =====================================================
# USERS
# =====================================================
_PROFILE_FIELDS = ("display_name", "email", "quota", "language")


def merge_user(payload: Any, params: Mapping[str, Any]) -> Any:
    uid = params["user_id"]
    updates = {k: params.get(k) for k in _PROFILE_FIELDS}
    if "enabled" in params:
        updates["enabled"] = params["enabled"]
    if isinstance(payload, dict) and payload.get("id") == uid and "users" not in payload:
        return _merge(payload, updates)
    return _replace_in(payload, "users", _with_id("id", uid), lambda u: _merge(u, updates))


def set_user_enabled(enabled: bool) -> Reducer:
    def reducer(payload: Any, params: Mapping[str, Any]) -> Any:
        return merge_user(payload, {"user_id": params["user_id"], "enabled": enabled})

    return reducer


def remove_user(payload: Any, params: Mapping[str, Any]) -> Any:
    return _remove_from(payload, "users", _with_id("id", params["user_id"]))


def _add(values: list[Any], value: Any) -> list[Any]:
    return values if value in values else [*values, value]


def _drop(values: list[Any], value: Any) -> list[Any]:
    return [v for v in values if v != value]


def _membership(op: Callable[[list[Any], Any], list[Any]]) -> Reducer:
    def reducer(payload: Any, params: Mapping[str, Any]) -> Any:
        uid, gid = params["user_id"], params["group_id"]
        if not isinstance(payload, dict):
            return payload
        # users.groups(uid): {"groups": [gid, ...]}
        if isinstance(payload.get("groups"), list) and all(isinstance(g, str) for g in payload["groups"]):
            groups = op(payload["groups"], gid)
            return payload if groups == payload["groups"] else {**payload, "groups": groups}
        # groups.detail(gid): {"id": gid, "members": [uid, ...]}
        if payload.get("id") == gid and isinstance(payload.get("members"), list):
            members = op(payload["members"], uid)
            if members == payload["members"]:
                return payload
            out = {**payload, "members": members}
            if isinstance(payload.get("user_count"), int):
                out["user_count"] = len(members)
            return out
        return payload

    return reducer


add_membership = _membership(_add)
remove_membership = _membership(_drop)


def _user_groups(op: Callable[[list[Any], Any], list[Any]]) -> Reducer:
    # users.detail(uid): {"id": uid, "groups": [...]} -- detail rows keep their own lists.
    def reducer(payload: Any, params: Mapping[str, Any]) -> Any:
        if not isinstance(payload, dict) or payload.get("id") != params["user_id"]:
            return payload
        groups = payload.get("groups")
        if not isinstance(groups, list):
            return payload
        updated = op(groups, params["group_id"])
        return payload if updated == groups else {**payload, "groups": updated}

    return reducer


add_user_group = _user_groups(_add)
remove_user_group = _user_groups(_drop)


# =====================================================
# DATA ROOMS
# =====================================================
_ROOM_FIELDS = ("mount_point", "quota", "acl")


def _room_update(payload: Any, folder_id: Any, update: Callable[[dict[str, Any]], dict[str, Any]]) -> Any:
    if isinstance(payload, dict) and "data_rooms" not in payload:
        return update(payload) if str(payload.get("id")) == str(folder_id) else payload
    return _replace_in(payload, "data_rooms", _with_id("id", folder_id), update)


def merge_data_room(payload: Any, params: Mapping[str, Any]) -> Any:
    updates = {k: params.get(k) for k in _ROOM_FIELDS}
    return _room_update(payload, params["folder_id"], lambda r: _merge(r, updates))


def remove_data_room(payload: Any, params: Mapping[str, Any]) -> Any:
    return _remove_from(payload, "data_rooms", _with_id("id", params["folder_id"]))


def set_data_room_group(payload: Any, params: Mapping[str, Any]) -> Any:
    gid, perms = params["group_id"], params.get("permissions", 31)

    def update(room: dict[str, Any]) -> dict[str, Any]:
        groups = room.get("groups") or {}
        if groups.get(gid) == perms:
            return room
        return {**room, "groups": {**groups, gid: perms}}

    return _room_update(payload, params["folder_id"], update)


def remove_data_room_group(payload: Any, params: Mapping[str, Any]) -> Any:
    gid = params["group_id"]

    def update(room: dict[str, Any]) -> dict[str, Any]:
        groups = room.get("groups") or {}
        if gid not in groups:
            return room
        return {**room, "groups": {k: v for k, v in groups.items() if k != gid}}

    return _room_update(payload, params["folder_id"], update)


# =====================================================
# SHARES
# =====================================================
_SHARE_FIELDS = ("permissions", "expire_date", "note", "label", "hide_download")


def merge_share(payload: Any, params: Mapping[str, Any]) -> Any:
    sid = params["share_id"]
    updates = {k: params.get(k) for k in _SHARE_FIELDS}
    if isinstance(payload, dict) and "shares" not in payload:
        return _merge(payload, updates) if str(payload.get("id")) == str(sid) else payload
    return _replace_in(payload, "shares", _with_id("id", sid), lambda s: _merge(s, updates))


def remove_share(payload: Any, params: Mapping[str, Any]) -> Any:
    return _remove_from(payload, "shares", _with_id("id", params["share_id"]))


# =====================================================
# FILES
# =====================================================
def remove_file_item(payload: Any, params: Mapping[str, Any]) -> Any:
    target = normalize_path(params["path"])
    return _remove_from(
        payload,
        "items",
        lambda item: isinstance(item, dict) and normalize_path(str(item.get("path", ""))) == target,
    )


# --- Module Notes -----------------------------------------------------------
# Reducers only predict; commit overwrites with server truth and invalidation
# refetches anything the prediction could have gotten wrong (e.g. member counts).
