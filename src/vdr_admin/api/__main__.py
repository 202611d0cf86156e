"""
vdr_admin.api.__main__

`python -m vdr_admin.api` launcher.

Responsibilities:
- Refuse to serve production traffic with the development signing secret.
- Serve the dashboard API from a single uvicorn worker.
"""

from __future__ import annotations

import sys

import uvicorn

from vdr_admin.api.app import create_app
from vdr_admin.observability.logging import get_logger
from vdr_admin.settings import Settings, get_settings

DEV_SECRET = Settings.model_fields["jwt_secret"].default


def main() -> int:
    settings = get_settings()
    app = create_app(settings=settings)
    log = get_logger(__name__)

    if settings.env == "prod" and settings.jwt_secret == DEV_SECRET:
        log.error("refusing_to_start", reason="VDR_JWT_SECRET is unset in prod")
        return 2

    log.info("serving", host=settings.api_host, port=settings.api_port, upstream=settings.nextcloud_base_url)
    # Dashboard sessions live in this process's memory; more workers would split them.
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, workers=1, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
