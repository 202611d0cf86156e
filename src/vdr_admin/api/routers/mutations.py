from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_502_BAD_GATEWAY,
)

from vdr_admin.auth.deps import get_session
from vdr_admin.auth.gate import Deny
from vdr_admin.cache.coordinator import RolledBack
from vdr_admin.cache.keys import parse_mutation
from vdr_admin.errors import UnknownResourceKind
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/mutations", tags=["mutations"])


@router.post("/{kind}")
async def mutate(
    kind: str,
    params: dict[str, Any] | None = Body(default=None),
    session: DashboardSession = Depends(get_session),
) -> Any:
    try:
        mutation = parse_mutation(kind)
    except UnknownResourceKind as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e)) from e

    try:
        parsed = session.coordinator.spec(mutation).parse(params)
    except ValueError as e:
        # Parameter struct rejected the body (unknown field, bad value, missing id).
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    outcome = await session.mutate_resource(mutation, parsed)

    if isinstance(outcome, Deny):
        # Denied before any optimistic write or remote call.
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail=outcome.reason.to_dict())
    if isinstance(outcome, RolledBack):
        return JSONResponse(status_code=HTTP_502_BAD_GATEWAY, content=outcome.to_dict())
    return outcome.to_dict()
