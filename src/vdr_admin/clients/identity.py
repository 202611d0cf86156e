"""
vdr_admin.clients.identity

Identity provider backed by the document server.

Responsibilities:
- Read the logged-in user (`/ocs/v2.php/cloud/user`) with the session's own credentials.
- Read the groups that user administers as a sub-admin.
- Produce an `Identity` snapshot (or None when the server no longer accepts the credentials).
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from vdr_admin.auth.models import Identity
from vdr_admin.clients.ocs import OCS_V1, OCS_V2, OcsClient
from vdr_admin.errors import RemoteCallError
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

CURRENT_USER = f"{OCS_V2}/cloud/user"


class NextcloudIdentityProvider:
    def __init__(self, ocs: OcsClient) -> None:
        self._ocs = ocs

    async def get_current_identity(self) -> Identity | None:
        try:
            data = await self._ocs.ocs("GET", CURRENT_USER)
        except RemoteCallError as e:
            if e.is_auth_error:
                log.info("identity_rejected", username=self._ocs.username, status_code=e.status_code)
                return None
            raise
        if not isinstance(data, dict) or not data.get("id"):
            return None

        user_id = str(data["id"])
        delegated = data.get("subadmin")
        if not isinstance(delegated, list):
            delegated = await self._subadmin_groups(user_id)

        return Identity.build(
            id=user_id,
            display_name=data.get("displayname") or data.get("display-name") or user_id,
            email=data.get("email") or "",
            groups=data.get("groups") or [],
            delegated_admin_groups=delegated,
            enabled=bool(data.get("enabled", True)),
        )

    async def _subadmin_groups(self, user_id: str) -> list[Any]:
        try:
            data = await self._ocs.ocs("GET", f"{OCS_V1}/cloud/users/{quote(user_id, safe='')}/subadmins")
        except RemoteCallError as e:
            # Plain users may not read sub-admin assignments; that means none.
            if e.is_auth_error:
                return []
            raise
        return list(data or [])


# --- Module Notes -----------------------------------------------------------
# Network failures propagate: "server unreachable" must not read as "logged out".
