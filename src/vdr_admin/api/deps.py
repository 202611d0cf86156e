"""
vdr_admin.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and the session registry.
- Encapsulate app.state access patterns (settings, sessions, upstream transport).
"""

from __future__ import annotations

import httpx
from fastapi import Request

from vdr_admin.services.dashboard_service import SessionRegistry
from vdr_admin.settings import Settings


def settings_dep(request: Request) -> Settings:
    # Settings are bound once in `vdr_admin.api.app.create_app`.
    return request.app.state.settings  # type: ignore[attr-defined]


def session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions  # type: ignore[attr-defined]


def upstream_transport(request: Request) -> httpx.AsyncBaseTransport | None:
    # Tests inject an `httpx.MockTransport`; production uses the default pool.
    return getattr(request.app.state, "upstream_transport", None)


# --- Module Notes -----------------------------------------------------------
# Per-session resources (cache, coordinator, document-server client) hang off the
# `DashboardSession`, not off the request.
