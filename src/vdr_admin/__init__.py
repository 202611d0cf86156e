"""
vdr_admin

Authorization and cache-consistency core behind a virtual data room
administration dashboard, plus the HTTP surface that exposes it.

Layers, bottom-up: `auth` (roles, capabilities, access gate), `cache`
(query cache, invalidation graph, mutation coordinator), `clients`
(document-server endpoints), `services` (per-user dashboard session)
and `api` (FastAPI routers).
"""

__version__ = "0.1.0"
