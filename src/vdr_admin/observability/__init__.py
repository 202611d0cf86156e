"""
vdr_admin.observability

Logging for the dashboard API and its authorization/cache core.

Responsibilities:
- JSON log rendering with document-server credentials redacted.
- Correlation ids and acting-user fields carried through contextvars.
"""
