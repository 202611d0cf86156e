"""
vdr_admin.clients

Document-server client package.

Responsibilities:
- Provide one resource client per resource kind (users, groups, data rooms,
  shares, files) over the OCS REST and WebDAV APIs.
- Provide the identity provider used on login/refresh.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The cache core depends on this boundary only through `fetch(key)` and
# `mutate(kind, params)`; it never sees HTTP.
