from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from vdr_admin.auth.deps import get_session
from vdr_admin.auth.roles import role_display
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/me", tags=["me"])


@router.get("")
async def me(session: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    identity = session.identity.require()
    capabilities = session.use_capabilities()
    return {
        "user": identity.to_dict(),
        "role_label": role_display(capabilities.tier),
        **capabilities.to_dict(),
    }
