"""
vdr_admin.clients.data_rooms

Data room client: data rooms are Nextcloud group folders (`apps/groupfolders`).

Payload shapes handed to the cache:
- list: `{"data_rooms": [room, ...], "total": n}`
- detail: `room` = `{"id", "mount_point", "groups": {group_id: permissions},
  "quota", "size", "acl", "manage"}`
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind, ResourceKind
from vdr_admin.cache.mutations import (
    PERM_ALL,
    CreateDataRoomParams,
    DataRoomGroupParams,
    DataRoomGroupRefParams,
    DataRoomRefParams,
    UpdateDataRoomParams,
)
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import OCS_V2, OcsClient
from vdr_admin.errors import RemoteCallError
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

FOLDERS = f"{OCS_V2}/apps/groupfolders/folders"

# Group folder quota: -3 is "unlimited".
UNLIMITED_QUOTA = -3


def normalize_room(raw: dict[str, Any], folder_id: int | str | None = None) -> dict[str, Any]:
    # Empty maps arrive as `[]` from PHP.
    groups = raw.get("groups") if isinstance(raw.get("groups"), dict) else {}
    manage = raw.get("manage") if isinstance(raw.get("manage"), list) else []
    return {
        "id": int(raw.get("id") or folder_id or 0),
        "mount_point": raw.get("mount_point") or "",
        "groups": {str(g): _permissions(p) for g, p in groups.items()},
        "quota": int(raw.get("quota") if raw.get("quota") is not None else UNLIMITED_QUOTA),
        "size": int(raw.get("size") or 0),
        "acl": bool(raw.get("acl", False)),
        "manage": manage,
    }


def _permissions(value: Any) -> int:
    # Newer groupfolders versions send `{"displayName", "permissions", "type"}`.
    if isinstance(value, dict):
        value = value.get("permissions")
    return int(value or 0)


class DataRoomsClient(DispatchingClient):
    resource = ResourceKind.data_rooms

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {
            QueryKind.data_room_list: self.list_rooms,
            QueryKind.data_room_detail: self.get_room,
        }
        self.mutations = {
            MutationKind.create_data_room: self.create_room,
            MutationKind.update_data_room: self.update_room,
            MutationKind.delete_data_room: self.delete_room,
            MutationKind.add_data_room_group: self.add_group,
            MutationKind.set_data_room_group_permissions: self.set_group_permissions,
            MutationKind.remove_data_room_group: self.remove_group,
        }

    @staticmethod
    def _path(folder_id: int | str, suffix: str = "") -> str:
        return f"{FOLDERS}/{folder_id}{suffix}"

    # ------------------------------------------------------------------ reads

    async def list_rooms(self, key: CacheKey) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", FOLDERS)
        # Folders arrive as an object keyed by folder id.
        folders = data.values() if isinstance(data, dict) else (data or [])
        rooms = [normalize_room(f) for f in folders if isinstance(f, dict)]
        rooms.sort(key=lambda r: r["id"])
        return {"data_rooms": rooms, "total": len(rooms)}

    async def get_room(self, key: CacheKey) -> dict[str, Any]:
        return await self._fetch_room(str(key.resource_id))

    async def _fetch_room(self, folder_id: int | str) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", self._path(folder_id))
        return normalize_room(data or {}, folder_id)

    # ----------------------------------------------------------------- writes

    async def create_room(self, p: CreateDataRoomParams) -> dict[str, Any]:
        data = await self._ocs.ocs("POST", FOLDERS, data={"mountpoint": p.mount_point})
        folder_id = (data or {}).get("id")
        if folder_id is None:
            raise RemoteCallError(message="data room created but the server returned no id")

        # The folder exists from here on; follow-up failures are reported, not rolled back.
        warnings: list[str] = []
        for group_id in p.groups:
            try:
                await self._ocs.ocs("POST", self._path(folder_id, "/groups"), data={"group": group_id})
            except RemoteCallError as e:
                log.warning("data_room_group_failed", folder_id=folder_id, group_id=group_id, error=e.message)
                warnings.append(f"failed to assign group {group_id}: {e.message}")
        if p.quota is not None:
            await self._ocs.ocs("POST", self._path(folder_id, "/quota"), data={"quota": str(p.quota)})
        if p.acl:
            await self._ocs.ocs("POST", self._path(folder_id, "/acl"), data={"acl": "1"})

        room = await self._fetch_room(folder_id)
        return {**room, "warnings": warnings} if warnings else room

    async def update_room(self, p: UpdateDataRoomParams) -> dict[str, Any]:
        if p.mount_point is not None:
            await self._ocs.ocs("POST", self._path(p.folder_id, "/mountpoint"), data={"mountpoint": p.mount_point})
        if p.quota is not None:
            await self._ocs.ocs("POST", self._path(p.folder_id, "/quota"), data={"quota": str(p.quota)})
        if p.acl is not None:
            await self._ocs.ocs("POST", self._path(p.folder_id, "/acl"), data={"acl": "1" if p.acl else "0"})
        return await self._fetch_room(p.folder_id)

    async def delete_room(self, p: DataRoomRefParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.folder_id))
        return {"id": p.folder_id, "deleted": True}

    async def add_group(self, p: DataRoomGroupParams) -> dict[str, Any]:
        await self._ocs.ocs("POST", self._path(p.folder_id, "/groups"), data={"group": p.group_id})
        # New groups start with full permissions; narrow them when asked to.
        if p.permissions != PERM_ALL:
            await self._set_permissions(p.folder_id, p.group_id, p.permissions)
        return {"folder_id": p.folder_id, "group_id": p.group_id, "permissions": p.permissions}

    async def set_group_permissions(self, p: DataRoomGroupParams) -> dict[str, Any]:
        await self._set_permissions(p.folder_id, p.group_id, p.permissions)
        return {"folder_id": p.folder_id, "group_id": p.group_id, "permissions": p.permissions}

    async def remove_group(self, p: DataRoomGroupRefParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", self._path(p.folder_id, f"/groups/{quote(p.group_id, safe='')}"))
        return {"folder_id": p.folder_id, "group_id": p.group_id}

    async def _set_permissions(self, folder_id: int, group_id: str, permissions: int) -> None:
        await self._ocs.ocs(
            "POST",
            self._path(folder_id, f"/groups/{quote(group_id, safe='')}"),
            data={"permissions": str(permissions)},
        )


# --- Module Notes -----------------------------------------------------------
# Group folders have no server-side pagination or search; the list view is the
# whole set and filtering is left to the caller.
