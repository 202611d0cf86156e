"""
vdr_admin.observability.middleware

Per-request log context and access logging for the dashboard API.

Responsibilities:
- Accept a caller-supplied correlation id or mint one, and echo it back.
- Bind the correlation id and route into structlog contextvars.
- Emit one `http_request` event per call with status and latency.
"""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

CORRELATION_HEADER = "x-request-id"

# Health checks are polled constantly; they would drown the access log.
_QUIET_PATHS = frozenset({"/healthz", "/readyz"})
_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _correlation_id(request: Request) -> str:
    supplied = request.headers.get(CORRELATION_HEADER)
    if supplied and _SAFE_ID.match(supplied):
        return supplied
    return uuid.uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = _correlation_id(request)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=correlation_id,
            route=f"{request.method} {request.url.path}",
        )
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            if request.url.path not in _QUIET_PATHS:
                log.info(
                    "http_request",
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            structlog.contextvars.clear_contextvars()

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


# --- Module Notes -----------------------------------------------------------
# `actor` / `actor_tier` are bound by the auth dependency inside the endpoint;
# they enrich the endpoint's own events, not the access line emitted here.
