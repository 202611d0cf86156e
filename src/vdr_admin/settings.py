"""
vdr_admin.settings

Process configuration, read from `VDR_*` environment variables.

Responsibilities:
- Name the document server and how patiently to talk to it.
- Configure session tokens (the signing secret never appears in repr).
- Default cache windows and the rollback notification buffer size.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VDR_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "vdr-admin"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Session tokens handed to the browser after a successful login.
    jwt_alg: str = "HS256"
    jwt_issuer: str = "vdr-admin"
    jwt_audience: str = "vdr-dashboard"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)
    session_ttl_minutes: int = Field(default=8 * 60, ge=1)

    # Upstream document server (Nextcloud OCS + WebDAV).
    nextcloud_base_url: str = "http://localhost:8081"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    transport_retries: int = Field(default=2, ge=0)

    # Fallback cache windows for query views without an explicit policy.
    default_fresh_seconds: float = Field(default=300.0, ge=0)
    default_retain_seconds: float = Field(default=600.0, ge=0)

    notification_buffer_size: int = Field(default=50, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Cache windows per query view live in `cache.policy`; the two defaults here only
# cover views that do not declare their own.
