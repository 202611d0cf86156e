"""
vdr_admin.api.routers.audit

Audit trail: the activity feed with its summary, and a downloadable export.

Responsibilities:
- Guard the feed with `view-audit` and the export with `export-audit`.
- Serve both from the session cache so the overview and the export agree.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from starlette.status import HTTP_502_BAD_GATEWAY

from vdr_admin.auth.capabilities import Capability
from vdr_admin.auth.deps import require_capability
from vdr_admin.auth.gate import ResourceType, explain_forbidden
from vdr_admin.cache.keys import AuditLogParams, QueryKind
from vdr_admin.cache.state import ResourceView
from vdr_admin.clients.audit import export_entries
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/audit", tags=["audit"])


async def _feed(session: DashboardSession, limit: int, fresh: bool) -> ResourceView:
    return await session.fetch_resource(QueryKind.audit_log, params=AuditLogParams(limit=limit), wait_for_fresh=fresh)


@router.get("")
async def audit_log(
    limit: int = Query(default=50, ge=1, le=500),
    fresh: bool = False,
    session: DashboardSession = Depends(require_capability(Capability.view_audit)),
) -> dict[str, Any]:
    view = await _feed(session, limit, fresh)
    body = view.to_dict()
    if view.error is not None and view.error.is_permission_error:
        body["explanation"] = explain_forbidden(session.use_capabilities().tier, ResourceType.audit).to_dict()
    return body


@router.get("/export")
async def export_audit_log(
    format: Literal["csv", "json"] = "csv",
    category: list[str] = Query(default=[]),
    severity: list[str] = Query(default=[]),
    limit: int = Query(default=500, ge=1, le=500),
    session: DashboardSession = Depends(require_capability(Capability.export_audit)),
) -> Response:
    # A stale feed is refetched and awaited rather than exported as-is.
    view = await _feed(session, limit, fresh=True)
    if view.error is not None:
        raise HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=view.error.message)

    export = export_entries(view.data["entries"], fmt=format, categories=category, severities=severity)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Record-Count": str(export.records),
        },
    )
