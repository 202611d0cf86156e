"""
vdr_admin.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
- Resolve the principal's live `DashboardSession`.
- Guard routes with the Permission Gate via reusable dependency factories.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from vdr_admin.api.deps import session_registry, settings_dep
from vdr_admin.auth.capabilities import Capability
from vdr_admin.auth.gate import Deny, Requirement
from vdr_admin.auth.jwt import SessionTokenCodec, SessionTokenError
from vdr_admin.auth.models import Principal, RoleTier
from vdr_admin.observability.logging import bind_actor
from vdr_admin.services.dashboard_service import DashboardSession, SessionRegistry
from vdr_admin.settings import Settings

_bearer = HTTPBearer(auto_error=False)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(settings_dep),
) -> Principal:
    # Authn: require a bearer token.
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    try:
        return SessionTokenCodec.from_settings(settings).verify(creds.credentials)
    except SessionTokenError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e


def get_session(
    principal: Principal = Depends(get_principal),
    sessions: SessionRegistry = Depends(session_registry),
) -> DashboardSession:
    session = sessions.get(principal.session_id)
    # A logged-out session has no identity; its token is dead even if unexpired.
    if session is None or session.identity.current is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Session expired")
    if session.identity.current.id != principal.subject:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Session subject mismatch")
    bind_actor(subject=principal.subject, tier=session.role)
    return session


def require_capability(*required: str | Capability, min_tier: RoleTier | None = None):
    requirement = Requirement.of(*required, min_tier=min_tier)

    def _dep(session: DashboardSession = Depends(get_session)) -> DashboardSession:
        # Authz: same gate the core uses for mutations, evaluated on live capabilities.
        decision = session.check_access(requirement)
        if isinstance(decision, Deny):
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail=decision.reason.to_dict())
        return session

    return _dep


# --- Module Notes -----------------------------------------------------------
# Route guards only shape the HTTP surface; every mutation is gated again inside
# `DashboardSession.mutate_resource` with its parameter-scoped requirement.
