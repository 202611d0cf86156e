"""
vdr_admin.clients.ocs

HTTP boundary to the document server (Nextcloud OCS REST + WebDAV).

Responsibilities:
- Own one `httpx.AsyncClient` per dashboard session, authenticated with the
  session user's own credentials (basic auth with an app password).
- Unwrap the OCS envelope (`{"ocs": {"meta": ..., "data": ...}}`) and turn
  every transport, HTTP or OCS-level failure into `RemoteCallError`.
- Issue raw WebDAV requests for file metadata.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from vdr_admin.errors import RemoteCallError
from vdr_admin.observability.logging import get_logger
from vdr_admin.settings import Settings

log = get_logger(__name__)

OCS_V1 = "/ocs/v1.php"
OCS_V2 = "/ocs/v2.php"
DAV_FILES = "/remote.php/dav/files"

# v1 always answers HTTP 200; the real outcome is `meta.statuscode`.
_OCS_OK = frozenset({100, 200})
_OCS_V1_HTTP = {997: 401, 998: 404, 996: 500}


class OcsClient:
    """
    Thin wrapper around `httpx.AsyncClient`; resource clients build on top of it.
    """

    def __init__(self, *, http: httpx.AsyncClient, username: str) -> None:
        self._http = http
        self.username = username

    @classmethod
    def create(
        cls,
        *,
        settings: Settings,
        username: str,
        password: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> OcsClient:
        # Socket-level retries live in the transport; the cache never retries on its own.
        transport = transport or httpx.AsyncHTTPTransport(retries=settings.transport_retries)
        http = httpx.AsyncClient(
            base_url=settings.nextcloud_base_url,
            auth=(username, password),
            headers={"OCS-APIRequest": "true", "Accept": "application/json"},
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )
        return cls(http=http, username=username)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------- OCS

    async def ocs(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call an OCS endpoint (`path` includes `/ocs/v1.php` or `/ocs/v2.php`) and return `ocs.data`."""

        query = {"format": "json", **(params or {})}
        try:
            r = await self._http.request(method, path, params=query, data=data)
        except httpx.HTTPError as e:
            raise RemoteCallError(message=f"{method} {path}: {e.__class__.__name__}: {e}") from e

        body = _json_or_none(r)
        meta = (body or {}).get("ocs", {}).get("meta", {}) if isinstance(body, dict) else {}
        code = meta.get("statuscode")
        message = meta.get("message") or r.reason_phrase or "request failed"

        if r.status_code >= 400:
            raise RemoteCallError(message=message, status_code=r.status_code, ocs_status=code)
        if body is None or "ocs" not in body:
            raise RemoteCallError(message=f"{method} {path}: not an OCS response", status_code=r.status_code)
        if code is not None and code not in _OCS_OK:
            status = _OCS_V1_HTTP.get(code, code if 400 <= code < 600 else 400)
            raise RemoteCallError(message=message, status_code=status, ocs_status=code)
        return body["ocs"].get("data")

    # ---------------------------------------------------------------- WebDAV

    def dav_url(self, path: str) -> str:
        clean = path.strip("/")
        user = quote(self.username, safe="")
        return f"{DAV_FILES}/{user}/{quote(clean)}" if clean else f"{DAV_FILES}/{user}/"

    def dav_absolute_url(self, path: str) -> str:
        # MOVE/COPY `Destination` headers must be absolute.
        return str(self._http.base_url.join(self.dav_url(path)))

    async def dav(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        url = self.dav_url(path)
        try:
            r = await self._http.request(method, url, headers=dict(headers or {}), content=content)
        except httpx.HTTPError as e:
            raise RemoteCallError(message=f"{method} {path}: {e.__class__.__name__}: {e}") from e
        if r.status_code >= 400:
            raise RemoteCallError(message=f"{method} {path}: {r.status_code} {r.reason_phrase}", status_code=r.status_code)
        return r


def _json_or_none(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


# --- Module Notes -----------------------------------------------------------
# Credentials are the logged-in user's own, so the server enforces the same
# sub-admin boundaries the capability catalog predicts.
