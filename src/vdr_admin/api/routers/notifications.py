"""
vdr_admin.api.routers.notifications

Failed-mutation notices for the browser's notification bell.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from vdr_admin.auth.deps import get_session
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    drain: bool = True,
    session: DashboardSession = Depends(get_session),
) -> dict[str, Any]:
    items = session.notifications.drain() if drain else session.notifications.items()
    return {"notifications": [e.to_dict() for e in items]}


# --- Module Notes -----------------------------------------------------------
# Draining is the default so a notice is shown once; `?drain=false` peeks.
