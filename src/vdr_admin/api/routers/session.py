"""
vdr_admin.api.routers.session

Login, refresh and logout.

Responsibilities:
- Verify document-server credentials by loading the identity with them.
- Open a `DashboardSession` and hand the browser a bearer token pointing at it.
- Re-read the identity on refresh; tear the session down on logout.
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_502_BAD_GATEWAY

from vdr_admin.api.deps import session_registry, settings_dep, upstream_transport
from vdr_admin.auth.deps import get_principal, get_session
from vdr_admin.auth.jwt import SessionTokenCodec
from vdr_admin.auth.models import Principal
from vdr_admin.auth.roles import role_display
from vdr_admin.errors import RemoteCallError
from vdr_admin.observability.logging import bind_actor, get_logger
from vdr_admin.services.dashboard_service import DashboardSession, SessionRegistry
from vdr_admin.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/v1/session", tags=["session"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=256)
    # Nextcloud app password (or account password where app passwords are not enforced).
    password: str = Field(min_length=1, repr=False)


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: dict[str, Any]
    tier: str
    role_label: str


def _token_response(session: DashboardSession, settings: Settings) -> SessionResponse:
    identity = session.identity.require()
    tier = session.use_capabilities().tier
    codec = SessionTokenCodec.from_settings(settings)
    token = codec.issue(subject=identity.id, session_id=session.id, tier=tier)
    return SessionResponse(
        access_token=token,
        expires_in=int(codec.ttl.total_seconds()),
        user=identity.to_dict(),
        tier=tier.value,
        role_label=role_display(tier),
    )


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    settings: Settings = Depends(settings_dep),
    sessions: SessionRegistry = Depends(session_registry),
    transport: httpx.AsyncBaseTransport | None = Depends(upstream_transport),
) -> SessionResponse:
    session = DashboardSession.connect(
        settings=settings,
        username=body.username,
        password=body.password,
        transport=transport,
    )
    try:
        identity = await session.login()
    except RemoteCallError as e:
        await session.aclose()
        log.warning("login_upstream_failed", username=body.username, status_code=e.status_code, error=e.message)
        raise HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=f"Document server unavailable: {e.message}") from e

    if identity is None:
        await session.aclose()
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    sessions.add(session)
    bind_actor(subject=identity.id, tier=session.role)
    return _token_response(session, settings)


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    principal: Principal = Depends(get_principal),
    session: DashboardSession = Depends(get_session),
    settings: Settings = Depends(settings_dep),
    sessions: SessionRegistry = Depends(session_registry),
) -> SessionResponse:
    try:
        identity = await session.refresh()
    except RemoteCallError as e:
        raise HTTPException(status_code=HTTP_502_BAD_GATEWAY, detail=f"Document server unavailable: {e.message}") from e

    if identity is None:
        await sessions.close(principal.session_id)
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Session expired")
    return _token_response(session, settings)


@router.post("/logout")
async def logout(
    principal: Principal = Depends(get_principal),
    sessions: SessionRegistry = Depends(session_registry),
) -> dict[str, str]:
    # Idempotent: logging out of an already closed session is not an error.
    await sessions.close(principal.session_id)
    return {"status": "logged_out"}


# --- Module Notes -----------------------------------------------------------
# A refresh issues a new token carrying the current tier; the old token stays
# valid until expiry because both point at the same session.
