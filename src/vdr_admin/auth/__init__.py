"""
vdr_admin.auth

Who the caller is and what they may do.

Responsibilities:
- Role resolution, capability catalog and the Permission Gate (pure core).
- Identity store and provider contract.
- Session tokens and FastAPI auth dependencies (HTTP edge).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# `roles`, `capabilities` and `gate` do no I/O; only `deps` and `jwt` know about HTTP.
