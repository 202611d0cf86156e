"""
vdr_admin.api.routers.resources

Read access to the session's resource cache.

Responsibilities:
- Map `GET /v1/resources/{query}` onto a cache key (query view, optional id,
  query-string parameters validated by the view's parameter struct).
- Return the cache view: data, loading/stale flags and the last fetch error.
- Explain document-server 403s in role-appropriate wording.
"""

from __future__ import annotations

from typing import Any, get_origin

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.status import HTTP_404_NOT_FOUND, HTTP_422_UNPROCESSABLE_ENTITY

from vdr_admin.auth.deps import get_session
from vdr_admin.auth.gate import ResourceType, explain_forbidden
from vdr_admin.cache.keys import QueryKind, ResourceKind, params_model_for, parse_query
from vdr_admin.errors import UnknownResourceKind
from vdr_admin.services.dashboard_service import DashboardSession

router = APIRouter(prefix="/v1/resources", tags=["resources"])

# Query-string names consumed by the route itself, never forwarded to the params struct.
_RESERVED = frozenset({"resource_id", "fresh"})

_RESOURCE_TYPES: dict[ResourceKind, ResourceType] = {
    ResourceKind.users: ResourceType.users,
    ResourceKind.groups: ResourceType.groups,
    ResourceKind.data_rooms: ResourceType.data_rooms,
    ResourceKind.shares: ResourceType.documents,
    ResourceKind.files: ResourceType.documents,
    ResourceKind.audit: ResourceType.audit,
}


def _view_params(request: Request, query: QueryKind) -> dict[str, Any]:
    fields = params_model_for(query).model_fields
    out: dict[str, Any] = {}
    for name in dict.fromkeys(request.query_params.keys()):
        if name in _RESERVED:
            continue
        values = request.query_params.getlist(name)
        field = fields.get(name)
        # Repeated names (`group_ids=a&group_ids=b`) feed tuple fields.
        if field is not None and get_origin(field.annotation) is tuple:
            out[name] = values
        else:
            out[name] = values[-1]
    return out


@router.get("/{query}")
async def read_resource(
    request: Request,
    query: str,
    resource_id: str | None = None,
    fresh: bool = False,
    session: DashboardSession = Depends(get_session),
) -> dict[str, Any]:
    try:
        q = parse_query(query)
    except UnknownResourceKind as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e)) from e

    try:
        view = await session.fetch_resource(q, resource_id, _view_params(request, q), wait_for_fresh=fresh)
    except ValueError as e:
        # Unknown or malformed view parameters, or a missing resource id.
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    body = view.to_dict()
    if view.error is not None and view.error.is_permission_error:
        tier = session.use_capabilities().tier
        body["explanation"] = explain_forbidden(tier, _RESOURCE_TYPES[q.resource]).to_dict()
    return body


# --- Module Notes -----------------------------------------------------------
# Reads are not gated here: the document server enforces read visibility with the
# user's own credentials, and its 403 comes back as a cache-entry error.
