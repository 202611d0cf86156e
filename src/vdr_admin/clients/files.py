"""
vdr_admin.clients.files

File metadata client over WebDAV (`/remote.php/dav/files/{user}`).

Responsibilities:
- List a folder (`PROPFIND`, Depth 1) and read one item's properties (Depth 0).
- Create folders, delete, move and copy items.

Payload shapes handed to the cache:
- list: `{"path", "items": [item, ...]}` (the folder itself is not an item)
- properties: `item` = `{"path", "name", "is_dir", "size", "modified", "etag",
  "content_type", "file_id", "permissions"}`

File contents never pass through here; uploads and downloads are out of scope.
"""

from __future__ import annotations

import posixpath
import xml.etree.ElementTree as ET
from typing import Any
from urllib.parse import unquote, urlparse

from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind, ResourceKind, normalize_path
from vdr_admin.cache.mutations import PathParams, TransferParams
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import DAV_FILES, OcsClient
from vdr_admin.errors import RemoteCallError

_DAV = "{DAV:}"
_OC = "{http://owncloud.org/ns}"

PROPFIND_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<d:propfind xmlns:d="DAV:" xmlns:oc="http://owncloud.org/ns">
  <d:prop>
    <d:getlastmodified/>
    <d:getetag/>
    <d:getcontenttype/>
    <d:getcontentlength/>
    <d:resourcetype/>
    <oc:fileid/>
    <oc:permissions/>
    <oc:size/>
  </d:prop>
</d:propfind>
"""

HTTP_PRECONDITION_FAILED = 412


def _text(prop: ET.Element, tag: str) -> str | None:
    node = prop.find(tag)
    return node.text if node is not None and node.text is not None else None


def _int(value: str | None) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0


def _user_path(href: str, username: str) -> str:
    # href: /remote.php/dav/files/{user}/Documents/a%20b.pdf -> /Documents/a b.pdf
    raw = unquote(urlparse(href).path)
    prefix = f"{DAV_FILES}/{username}"
    idx = raw.find(prefix)
    rel = raw[idx + len(prefix):] if idx >= 0 else raw
    return normalize_path(rel)


def parse_multistatus(xml_text: str | bytes, *, username: str) -> list[dict[str, Any]]:
    """Turn a PROPFIND multistatus body into item dicts, in server order."""

    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise RemoteCallError(message=f"malformed WebDAV response: {e}") from e

    items: list[dict[str, Any]] = []
    for response in root.iter(f"{_DAV}response"):
        href = response.findtext(f"{_DAV}href")
        if not href:
            continue
        prop = None
        for propstat in response.findall(f"{_DAV}propstat"):
            status = (propstat.findtext(f"{_DAV}status") or "").split()
            if status[1:2] == ["200"]:
                prop = propstat.find(f"{_DAV}prop")
                break
        if prop is None:
            continue

        path = _user_path(href, username)
        resourcetype = prop.find(f"{_DAV}resourcetype")
        is_dir = resourcetype is not None and resourcetype.find(f"{_DAV}collection") is not None
        size = _text(prop, f"{_OC}size") if is_dir else _text(prop, f"{_DAV}getcontentlength")
        items.append(
            {
                "path": path,
                "name": posixpath.basename(path) or "/",
                "is_dir": is_dir,
                "size": _int(size),
                "modified": _text(prop, f"{_DAV}getlastmodified"),
                "etag": (_text(prop, f"{_DAV}getetag") or "").strip('"') or None,
                "content_type": None if is_dir else _text(prop, f"{_DAV}getcontenttype"),
                "file_id": _text(prop, f"{_OC}fileid"),
                "permissions": _text(prop, f"{_OC}permissions") or "",
            }
        )
    return items


class FilesClient(DispatchingClient):
    resource = ResourceKind.files

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {
            QueryKind.file_list: self.list_folder,
            QueryKind.file_properties: self.get_properties,
        }
        self.mutations = {
            MutationKind.create_folder: self.create_folder,
            MutationKind.delete_item: self.delete_item,
            MutationKind.move_item: self.move_item,
            MutationKind.copy_item: self.copy_item,
        }

    async def _propfind(self, path: str, depth: int) -> list[dict[str, Any]]:
        r = await self._ocs.dav(
            "PROPFIND",
            path,
            headers={"Depth": str(depth), "Content-Type": "application/xml; charset=utf-8"},
            content=PROPFIND_BODY,
        )
        return parse_multistatus(r.content, username=self._ocs.username)

    # ------------------------------------------------------------------ reads

    async def list_folder(self, key: CacheKey) -> dict[str, Any]:
        folder = normalize_path(str(key.resource_id))
        items = await self._propfind(folder, 1)
        children = [i for i in items if i["path"] != folder]
        children.sort(key=lambda i: (not i["is_dir"], i["name"].lower()))
        return {"path": folder, "items": children}

    async def get_properties(self, key: CacheKey) -> dict[str, Any]:
        path = normalize_path(str(key.resource_id))
        items = await self._propfind(path, 0)
        if not items:
            raise RemoteCallError(message=f"no properties returned for {path}", status_code=404)
        return items[0]

    # ----------------------------------------------------------------- writes

    async def create_folder(self, p: PathParams) -> dict[str, Any]:
        path = normalize_path(p.path)
        await self._ocs.dav("MKCOL", path)
        return {"path": path, "is_dir": True}

    async def delete_item(self, p: PathParams) -> dict[str, Any]:
        path = normalize_path(p.path)
        await self._ocs.dav("DELETE", path)
        return {"path": path, "deleted": True}

    async def _transfer(self, method: str, p: TransferParams) -> dict[str, Any]:
        source, destination = normalize_path(p.source), normalize_path(p.destination)
        headers = {
            "Destination": self._ocs.dav_absolute_url(destination),
            "Overwrite": "T" if p.overwrite else "F",
        }
        try:
            await self._ocs.dav(method, source, headers=headers)
        except RemoteCallError as e:
            if e.status_code == HTTP_PRECONDITION_FAILED:
                raise RemoteCallError(
                    message="destination already exists and overwrite is disabled",
                    status_code=e.status_code,
                ) from e
            raise
        return {"source": source, "destination": destination}

    async def move_item(self, p: TransferParams) -> dict[str, Any]:
        return await self._transfer("MOVE", p)

    async def copy_item(self, p: TransferParams) -> dict[str, Any]:
        return await self._transfer("COPY", p)


# --- Module Notes -----------------------------------------------------------
# Folder sizes come from `oc:size` (recursive); `getcontentlength` is only sent
# for files.
