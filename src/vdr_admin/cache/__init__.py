"""
vdr_admin.cache

Derived-state cache of document-server resources.

Responsibilities:
- Keyed resource snapshots with freshness/retention windows (`store`).
- Optimistic mutations with exact rollback (`coordinator`, `mutations`, `reducers`).
- Cross-entity invalidation after a committed write (`graph`).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing in this package performs I/O directly; fetches and writes go through the
# callables handed in by `services.dashboard_service`.
