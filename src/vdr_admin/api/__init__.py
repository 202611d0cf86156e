"""
vdr_admin.api

HTTP surface of the dashboard: session login, capability checks, cached reads,
gated writes and rollback notifications. Routers translate to and from
`DashboardSession` calls and hold no authorization or cache logic of their own.
"""
