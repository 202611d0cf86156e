"""
vdr_admin.clients.groups

Group provisioning client (OCS v1 `/cloud/groups`).

Payload shapes handed to the cache:
- list/search: `{"groups": [{"id", "display_name", "user_count", "disabled_count"}], "total": n}`
- detail: `{"id", "display_name", "members", "subadmins", "user_count"}`
- member-counts: `{"counts": {group_id: n}}`
- subadmins: `{"subadmins": [user_id, ...]}`
"""

from __future__ import annotations

import asyncio
from typing import Any, cast
from urllib.parse import quote

from vdr_admin.cache.keys import (
    CacheKey,
    GroupMemberCountsParams,
    ListParams,
    MutationKind,
    QueryKind,
    ResourceKind,
    SearchParams,
)
from vdr_admin.cache.mutations import CreateGroupParams, GroupRefParams, RenameGroupParams
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import OCS_V1, OcsClient

GROUPS = f"{OCS_V1}/cloud/groups"


def normalize_group(raw: dict[str, Any]) -> dict[str, Any]:
    gid = str(raw.get("id", ""))
    return {
        "id": gid,
        "display_name": raw.get("displayname") or gid,
        "user_count": int(raw.get("usercount") or 0),
        "disabled_count": int(raw.get("disabled") or 0),
    }


class GroupsClient(DispatchingClient):
    resource = ResourceKind.groups

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {
            QueryKind.group_list: self.list_groups,
            QueryKind.group_search: self.search_groups,
            QueryKind.group_detail: self.get_group,
            QueryKind.group_member_counts: self.member_counts,
            QueryKind.group_subadmins: self.get_subadmins,
        }
        self.mutations = {
            MutationKind.create_group: self.create_group,
            MutationKind.rename_group: self.rename_group,
            MutationKind.delete_group: self.delete_group,
        }

    @staticmethod
    def _path(group_id: str, suffix: str = "") -> str:
        return f"{GROUPS}/{quote(group_id, safe='')}{suffix}"

    # ------------------------------------------------------------------ reads

    async def _details(self, search: str, limit: int | None, offset: int) -> dict[str, Any]:
        params: dict[str, Any] = {"offset": offset}
        if search:
            params["search"] = search
        if limit is not None:
            params["limit"] = limit
        data = await self._ocs.ocs("GET", f"{GROUPS}/details", params=params)
        rows = [normalize_group(g) for g in (data or {}).get("groups") or [] if isinstance(g, dict)]
        return {"groups": rows, "total": len(rows)}

    async def list_groups(self, key: CacheKey) -> dict[str, Any]:
        p = cast(ListParams, key.params_model())
        return await self._details(p.search, p.limit, p.offset)

    async def search_groups(self, key: CacheKey) -> dict[str, Any]:
        p = cast(SearchParams, key.params_model())
        return await self._details(p.term, p.limit, p.offset)

    async def _members(self, group_id: str) -> list[str]:
        data = await self._ocs.ocs("GET", self._path(group_id))
        return list((data or {}).get("users") or [])

    async def _subadmins(self, group_id: str) -> list[str]:
        data = await self._ocs.ocs("GET", self._path(group_id, "/subadmins"))
        return list(data or [])

    async def get_group(self, key: CacheKey) -> dict[str, Any]:
        gid = str(key.resource_id)
        # Members, sub-admins and the display name come from three endpoints.
        members, subadmins, matches = await asyncio.gather(
            self._members(gid),
            self._subadmins(gid),
            self._details(gid, None, 0),
        )
        row = next((g for g in matches["groups"] if g["id"] == gid), None)
        return {
            "id": gid,
            "display_name": row["display_name"] if row else gid,
            "members": members,
            "subadmins": subadmins,
            "user_count": len(members),
        }

    async def member_counts(self, key: CacheKey) -> dict[str, Any]:
        p = cast(GroupMemberCountsParams, key.params_model())
        members = await asyncio.gather(*(self._members(gid) for gid in p.group_ids))
        return {"counts": {gid: len(m) for gid, m in zip(p.group_ids, members, strict=True)}}

    async def get_subadmins(self, key: CacheKey) -> dict[str, Any]:
        return {"subadmins": await self._subadmins(str(key.resource_id))}

    # ----------------------------------------------------------------- writes

    async def create_group(self, p: CreateGroupParams) -> dict[str, Any]:
        form = {"groupid": p.group_id}
        if p.display_name:
            form["displayname"] = p.display_name
        await self._ocs.ocs("POST", GROUPS, data=form)
        return {
            "id": p.group_id,
            "display_name": p.display_name or p.group_id,
            "members": [],
            "subadmins": [],
            "user_count": 0,
        }

    async def rename_group(self, p: RenameGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("PUT", self._path(p.group_id), data={"key": "displayname", "value": p.display_name})
        return {"id": p.group_id, "display_name": p.display_name}

    async def delete_group(self, p: GroupRefParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.group_id))
        return {"id": p.group_id, "deleted": True}


# --- Module Notes -----------------------------------------------------------
# The reserved `admin` group is an ordinary group to this client; the server
# refuses to delete it and that refusal surfaces as a rolled-back mutation.
