"""
vdr_admin.services

Per-user dashboard sessions.

Responsibilities:
- Compose identity, capabilities, cache and mutation coordinator per dashboard session.
- Own session lifecycle (login, refresh, logout, close).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# `DashboardSession` takes its identity provider and client registry as arguments;
# tests hand in fakes, `api.routers.session` hands in document-server clients.
