"""
vdr_admin.observability.logging

Structured logging configuration for the service.

Responsibilities:
- Configure `structlog`: JSON outside dev, console rendering in dev.
- Keep document-server credentials out of every log line.
- Bind the acting dashboard user into the request context.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Event keys that may carry document-server credentials.
_SECRET_KEYS = frozenset({"password", "app_password", "authorization", "token"})


def configure_logging(*, service_name: str, level: str, json_output: bool = True) -> None:
    """JSON lines for shipping; a console renderer when developing locally."""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_name(service_name),
            _redact_secrets,
            *_render_chain(json_output),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _render_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def _redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def bind_actor(*, subject: str, tier: str | None = None) -> None:
    """Attach the acting user (and tier, once known) to subsequent log events."""

    fields: dict[str, Any] = {"actor": subject}
    if tier is not None:
        fields["actor_tier"] = tier
    structlog.contextvars.bind_contextvars(**fields)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# The core (cache store, coordinator, identity store) logs through `get_logger`
# only; it never configures logging itself.
