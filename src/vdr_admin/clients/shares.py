"""
vdr_admin.clients.shares

Share client (OCS v2 `apps/files_sharing/api/v1/shares`).

Payload shapes handed to the cache:
- list / by-path: `{"shares": [share, ...]}`
- detail: `share` = `{"id", "share_type", "share_with", "share_with_name", "path",
  "permissions", "expire_date", "token", "url", "note", "label",
  "hide_download", "item_type", "uid_owner"}`
"""

from __future__ import annotations

from typing import Any, cast

from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind, ResourceKind, ShareListParams, normalize_path
from vdr_admin.cache.mutations import CreateShareParams, DeleteShareParams, ShareType, UpdateShareParams
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import OCS_V2, OcsClient

SHARES = f"{OCS_V2}/apps/files_sharing/api/v1/shares"


def _flag(value: Any) -> bool:
    return value in (True, 1, "1", "true")


def normalize_share(raw: dict[str, Any]) -> dict[str, Any]:
    expiration = raw.get("expiration")
    return {
        "id": str(raw.get("id", "")),
        "share_type": int(raw.get("share_type") or 0),
        "share_with": raw.get("share_with"),
        "share_with_name": raw.get("share_with_displayname") or raw.get("share_with"),
        "path": normalize_path(str(raw.get("path") or "/")),
        "permissions": int(raw.get("permissions") or 0),
        # Server sends "YYYY-MM-DD 00:00:00"; the date part is what callers set.
        "expire_date": expiration.split(" ", 1)[0] if isinstance(expiration, str) and expiration else None,
        "token": raw.get("token"),
        "url": raw.get("url"),
        "note": raw.get("note") or "",
        "label": raw.get("label") or "",
        "hide_download": _flag(raw.get("hide_download")),
        "item_type": raw.get("item_type"),
        "uid_owner": raw.get("uid_owner"),
    }


def _shares(data: Any) -> list[dict[str, Any]]:
    return [normalize_share(s) for s in (data or []) if isinstance(s, dict)]


class SharesClient(DispatchingClient):
    resource = ResourceKind.shares

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {
            QueryKind.share_list: self.list_shares,
            QueryKind.shares_by_path: self.shares_for_path,
            QueryKind.share_detail: self.get_share,
        }
        self.mutations = {
            MutationKind.create_share: self.create_share,
            MutationKind.update_share: self.update_share,
            MutationKind.delete_share: self.delete_share,
        }

    # ------------------------------------------------------------------ reads

    @staticmethod
    def _flags(p: ShareListParams) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if p.reshares:
            params["reshares"] = "true"
        if p.subfiles:
            params["subfiles"] = "true"
        return params

    async def list_shares(self, key: CacheKey) -> dict[str, Any]:
        p = cast(ShareListParams, key.params_model())
        data = await self._ocs.ocs("GET", SHARES, params=self._flags(p))
        return {"shares": _shares(data)}

    async def shares_for_path(self, key: CacheKey) -> dict[str, Any]:
        p = cast(ShareListParams, key.params_model())
        params = {"path": key.resource_id, **self._flags(p)}
        data = await self._ocs.ocs("GET", SHARES, params=params)
        return {"shares": _shares(data)}

    async def get_share(self, key: CacheKey) -> dict[str, Any]:
        return await self._fetch_share(str(key.resource_id))

    async def _fetch_share(self, share_id: str) -> dict[str, Any]:
        data = await self._ocs.ocs("GET", f"{SHARES}/{share_id}")
        # Detail comes back as a one-element list.
        rows = _shares(data if isinstance(data, list) else [data])
        return rows[0] if rows else {"id": share_id}

    # ----------------------------------------------------------------- writes

    async def create_share(self, p: CreateShareParams) -> dict[str, Any]:
        form: dict[str, Any] = {
            "path": normalize_path(p.path),
            "shareType": str(int(p.share_type)),
            "permissions": str(p.permissions),
        }
        if p.share_with:
            form["shareWith"] = p.share_with
        if p.password:
            form["password"] = p.password
        if p.expire_date:
            form["expireDate"] = p.expire_date
        if p.note:
            form["note"] = p.note
        if p.label:
            form["label"] = p.label
        if p.public_upload and p.share_type is ShareType.public_link:
            form["publicUpload"] = "true"
        data = await self._ocs.ocs("POST", SHARES, data=form)
        return normalize_share(data or {})

    async def update_share(self, p: UpdateShareParams) -> dict[str, Any]:
        form: dict[str, Any] = {}
        if p.permissions is not None:
            form["permissions"] = str(p.permissions)
        if p.password is not None:
            form["password"] = p.password
        if p.expire_date is not None:
            form["expireDate"] = p.expire_date
        if p.note is not None:
            form["note"] = p.note
        if p.label is not None:
            form["label"] = p.label
        if p.hide_download is not None:
            form["hideDownload"] = "true" if p.hide_download else "false"
        data = await self._ocs.ocs("PUT", f"{SHARES}/{p.share_id}", data=form)
        if isinstance(data, dict) and data:
            return normalize_share(data)
        return await self._fetch_share(p.share_id)

    async def delete_share(self, p: DeleteShareParams) -> dict[str, Any]:
        await self._ocs.ocs("DELETE", f"{SHARES}/{p.share_id}")
        return {"id": p.share_id, "deleted": True}


# --- Module Notes -----------------------------------------------------------
# Paths are the user-relative form (`/Documents/x.pdf`), the same form the file
# client keys its listings by.
