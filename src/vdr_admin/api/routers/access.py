"""
vdr_admin.api.routers.access

Ad-hoc permission checks for the front-end (what to show, what to grey out).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY

from vdr_admin.auth.deps import get_session
from vdr_admin.auth.gate import Deny, Requirement
from vdr_admin.auth.models import RoleTier
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/access", tags=["access"])


class AccessCheckRequest(BaseModel):
    # Any-of: one matching grant is enough. `name:group` checks one scope.
    any_of: list[str] = Field(default_factory=list, max_length=64)
    min_tier: RoleTier | None = None


@router.post("/check")
async def check_access(
    body: AccessCheckRequest,
    session: DashboardSession = Depends(get_session),
) -> dict[str, Any]:
    try:
        requirement = Requirement.of(*body.any_of, min_tier=body.min_tier)
    except ValueError as e:
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    decision = session.check_access(requirement)
    if isinstance(decision, Deny):
        return {"allowed": False, "reason": decision.reason.to_dict()}
    return {"allowed": True, "reason": None}


# --- Module Notes -----------------------------------------------------------
# An empty request (no capabilities, no tier) is allowed: it requires nothing.
