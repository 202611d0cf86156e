"""
vdr_admin.api.routers.health

Liveness and readiness endpoints. Neither requires a session token.

Responsibilities:
- `/healthz`: the process answers HTTP.
- `/readyz`: configuration loaded; reports the document server in use and how
  many dashboard sessions this process holds.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from vdr_admin import __version__
from vdr_admin.api.deps import session_registry, settings_dep
from vdr_admin.services.dashboard_service import SessionRegistry
from vdr_admin.settings import Settings

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.get("/readyz")
async def readyz(
    settings: Settings = Depends(settings_dep),
    sessions: SessionRegistry = Depends(session_registry),
) -> dict[str, Any]:
    # The document server is not contacted: each session authenticates with its own
    # credentials, so there is no service account to check with.
    return {
        "status": "ready",
        "env": settings.env,
        "upstream": settings.nextcloud_base_url,
        "sessions": len(sessions),
    }
