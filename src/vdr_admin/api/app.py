"""
vdr_admin.api.app

FastAPI app factory for the data room administration service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Own the session registry and close every dashboard session on shutdown.
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from vdr_admin import __version__
from vdr_admin.api.routers.access import router as access_router
from vdr_admin.api.routers.audit import router as audit_router
from vdr_admin.api.routers.health import router as health_router
from vdr_admin.api.routers.me import router as me_router
from vdr_admin.api.routers.mutations import router as mutations_router
from vdr_admin.api.routers.notifications import router as notifications_router
from vdr_admin.api.routers.resources import router as resources_router
from vdr_admin.api.routers.session import router as session_router
from vdr_admin.observability.logging import configure_logging, get_logger
from vdr_admin.observability.middleware import RequestContextMiddleware
from vdr_admin.services.dashboard_service import SessionRegistry
from vdr_admin.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings, upstream_transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_output=settings.env != "dev",
    )

    app = FastAPI(
        title="Data Room Administration Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.sessions = SessionRegistry()
    app.state.upstream_transport = upstream_transport

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(session_router)
    app.include_router(me_router)
    app.include_router(access_router)
    app.include_router(resources_router)
    app.include_router(mutations_router)
    app.include_router(notifications_router)
    app.include_router(audit_router)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    log.info("startup", env=settings.env, upstream=settings.nextcloud_base_url)
    try:
        yield
    finally:
        # Pending writes are awaited inside each session before its client closes.
        await app.state.sessions.aclose()
        log.info("shutdown")


# --- Module Notes -----------------------------------------------------------
# Routers are mounted without prefixes here; each router declares its own `/v1/...`
# prefix and tags.
