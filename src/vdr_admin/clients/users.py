"""
vdr_admin.clients.users

User provisioning client (OCS v1 `/cloud/users`).

Payload shapes handed to the cache:
- list/search: `{"users": [user, ...], "total": n}`
- detail: `user` = `{"id", "display_name", "email", "enabled", "groups",
  "subadmin_groups", "quota", "language", "last_login"}`
- groups / subadmin-groups: `{"groups": [group_id, ...]}`
"""

from __future__ import annotations

from typing import Any, cast
from urllib.parse import quote

from vdr_admin.cache.keys import CacheKey, ListParams, MutationKind, QueryKind, ResourceKind, SearchParams
from vdr_admin.cache.mutations import CreateUserParams, UpdateUserParams, UserGroupParams, UserRefParams
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import OCS_V1, OcsClient

USERS = f"{OCS_V1}/cloud/users"

# OCS field names for `PUT /cloud/users/{id}` (one field per request).
_EDITABLE = {
    "display_name": "displayname",
    "email": "email",
    "password": "password",
    "quota": "quota",
    "language": "language",
}


def normalize_user(raw: dict[str, Any]) -> dict[str, Any]:
    uid = str(raw.get("id", ""))
    return {
        "id": uid,
        "display_name": raw.get("displayname") or raw.get("display-name") or uid,
        "email": raw.get("email") or "",
        "enabled": bool(raw.get("enabled", True)),
        "groups": list(raw.get("groups") or []),
        "subadmin_groups": list(raw.get("subadmin") or []),
        "quota": raw.get("quota") or {},
        "language": raw.get("language") or "",
        "last_login": raw.get("lastLogin"),
    }


def _user_rows(data: Any) -> list[dict[str, Any]]:
    # `users` is an object keyed by id, or `[]` when empty.
    users = (data or {}).get("users") or {}
    rows = users.values() if isinstance(users, dict) else users
    return [normalize_user(u) for u in rows if isinstance(u, dict)]


def _page(search: str, limit: int | None, offset: int) -> dict[str, Any]:
    params: dict[str, Any] = {"offset": offset}
    if search:
        params["search"] = search
    if limit is not None:
        params["limit"] = limit
    return params


class UsersClient(DispatchingClient):
    resource = ResourceKind.users

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {
            QueryKind.user_list: self.list_users,
            QueryKind.user_search: self.search_users,
            QueryKind.user_detail: self.get_user,
            QueryKind.user_groups: self.get_user_groups,
            QueryKind.user_subadmin_groups: self.get_subadmin_groups,
        }
        self.mutations = {
            MutationKind.create_user: self.create_user,
            MutationKind.update_user: self.update_user,
            MutationKind.enable_user: self.enable_user,
            MutationKind.disable_user: self.disable_user,
            MutationKind.delete_user: self.delete_user,
            MutationKind.add_user_to_group: self.add_to_group,
            MutationKind.remove_user_from_group: self.remove_from_group,
            MutationKind.promote_subadmin: self.promote_subadmin,
            MutationKind.demote_subadmin: self.demote_subadmin,
        }

    @staticmethod
    def _path(user_id: str, suffix: str = "") -> str:
        return f"{USERS}/{quote(user_id, safe='')}{suffix}"

    # ------------------------------------------------------------------ reads

    async def list_users(self, key: CacheKey) -> dict[str, Any]:
        p = cast(ListParams, key.params_model())
        data = await self._ocs.ocs("GET", f"{USERS}/details", params=_page(p.search, p.limit, p.offset))
        rows = _user_rows(data)
        return {"users": rows, "total": len(rows)}

    async def search_users(self, key: CacheKey) -> dict[str, Any]:
        p = cast(SearchParams, key.params_model())
        data = await self._ocs.ocs("GET", f"{USERS}/details", params=_page(p.term, p.limit, p.offset))
        rows = _user_rows(data)
        return {"users": rows, "total": len(rows)}

    async def get_user(self, key: CacheKey) -> dict[str, Any]:
        return await self._fetch_user(str(key.resource_id))

    async def get_user_groups(self, key: CacheKey) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", self._path(str(key.resource_id), "/groups"))
        return {"groups": list((data or {}).get("groups") or [])}

    async def get_subadmin_groups(self, key: CacheKey) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", self._path(str(key.resource_id), "/subadmins"))
        return {"groups": list(data or [])}

    async def _fetch_user(self, user_id: str) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", self._path(user_id))
        return normalize_user(data or {"id": user_id})

    # ----------------------------------------------------------------- writes

    async def create_user(self, p: CreateUserParams) -> dict[str, Any]:
        form: dict[str, Any] = {"userid": p.user_id}
        if p.password:
            form["password"] = p.password
        if p.display_name:
            form["displayName"] = p.display_name
        if p.email:
            form["email"] = p.email
        if p.quota:
            form["quota"] = p.quota
        if p.language:
            form["language"] = p.language
        if p.groups:
            form["groups[]"] = list(p.groups)
        if p.subadmin_groups:
            form["subadmin[]"] = list(p.subadmin_groups)
        await self._ocs.ocs("POST", USERS, data=form)
        return await self._fetch_user(p.user_id)

    async def update_user(self, p: UpdateUserParams) -> dict[str, Any]:
        for field, ocs_key in _EDITABLE.items():
            value = getattr(p, field)
            if value is not None:
                await self._ocs.ocs("PUT", self._path(p.user_id), data={"key": ocs_key, "value": value})
        return await self._fetch_user(p.user_id)

    async def enable_user(self, p: UserRefParams) -> dict[str, Any]:
        await self._ocs.ocs("PUT", self._path(p.user_id, "/enable"))
        return await self._fetch_user(p.user_id)

    async def disable_user(self, p: UserRefParams) -> dict[str, Any]:
        await self._ocs.ocs("PUT", self._path(p.user_id, "/disable"))
        return await self._fetch_user(p.user_id)

    async def delete_user(self, p: UserRefParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.user_id))
        return {"id": p.user_id, "deleted": True}

    async def add_to_group(self, p: UserGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("POST", self._path(p.user_id, "/groups"), data={"groupid": p.group_id})
        return {"user_id": p.user_id, "group_id": p.group_id}

    async def remove_from_group(self, p: UserGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.user_id, "/groups"), data={"groupid": p.group_id})
        return {"user_id": p.user_id, "group_id": p.group_id}

    async def promote_subadmin(self, p: UserGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("POST", self._path(p.user_id, "/subadmins"), data={"groupid": p.group_id})
        return {"user_id": p.user_id, "group_id": p.group_id}

    async def demote_subadmin(self, p: UserGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.user_id, "/subadmins"), data={"groupid": p.group_id})
        return {"user_id": p.user_id, "group_id": p.group_id}


# --- Module Notes -----------------------------------------------------------
# Profile edits are one PUT per field; a failure midway leaves earlier fields
# applied on the server until the next refetch of the user shows them.
