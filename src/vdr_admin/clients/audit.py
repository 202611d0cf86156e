"""
vdr_admin.clients.audit

Audit trail client over the Activity app (OCS v2 `/apps/activity/api/v2/activity`).

Responsibilities:
- Read the activity feed and classify each entry (category, severity, flags).
- Summarize a feed for the overview panel.
- Render an export (CSV or JSON) of a filtered feed.

Payload handed to the cache:
- log: `{"entries": [...], "total": n, "stats": {...}}`
"""

from __future__ import annotations

import csv
import io
import json
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, cast

from vdr_admin.cache.keys import AuditLogParams, CacheKey, QueryKind, ResourceKind
from vdr_admin.clients.base import DispatchingClient
from vdr_admin.clients.ocs import OCS_V2, OcsClient
from vdr_admin.errors import RemoteCallError

ACTIVITY = f"{OCS_V2}/apps/activity/api/v2/activity"

# The Activity app answers 304 with no body when the feed has nothing newer.
HTTP_NOT_MODIFIED = 304


class Category(StrEnum):
    security = "security"
    files = "files"
    users = "users"
    data_rooms = "data_rooms"
    system = "system"
    apps = "apps"
    general = "general"


class Severity(StrEnum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


_CRITICAL_WORDS = ("failed", "error", "denied", "blocked", "deleted", "removed")
_HIGH_WORDS = ("login", "password", "created", "modified", "shared")
_MEDIUM_WORDS = ("updated", "changed", "moved", "renamed", "copied")
_SECURITY_WORDS = (
    "login", "password", "security", "authentication", "authorization",
    "permission", "access", "denied", "blocked",
)


def categorize(app: str, type_: str, object_type: str) -> Category:
    if app == "admin_audit" or any(w in type_ for w in ("login", "password", "security")):
        return Category.security
    if app == "files" or object_type == "files" or "file" in type_ or "share" in type_:
        return Category.files
    if app == "settings" or "user" in type_ or "group" in type_:
        return Category.users
    if app == "groupfolders" or object_type == "groupfolder":
        return Category.data_rooms
    if app in ("core", "system") or "system" in type_:
        return Category.system
    if app and app != "no app in context":
        return Category.apps
    return Category.general


def rate(app: str, text: str) -> Severity:
    text = text.lower()
    if any(w in text for w in _CRITICAL_WORDS):
        return Severity.critical
    if app == "admin_audit" or any(w in text for w in _HIGH_WORDS):
        return Severity.high
    if any(w in text for w in _MEDIUM_WORDS):
        return Severity.medium
    return Severity.low


def normalize_activity(raw: dict[str, Any]) -> dict[str, Any]:
    app = str(raw.get("app") or "system")
    type_ = str(raw.get("type") or "unknown")
    object_type = str(raw.get("object_type") or "")
    subject = str(raw.get("subject") or raw.get("message") or "Unknown activity")
    message = str(raw.get("message") or raw.get("subject") or "")
    text = f"{subject} {message}"
    user = raw.get("affecteduser") or raw.get("user") or "system"
    return {
        "id": raw.get("activity_id") or raw.get("id"),
        "timestamp": raw.get("datetime") or raw.get("timestamp"),
        "app": app,
        "type": type_,
        "subject": subject,
        "message": message,
        "object_type": object_type,
        "object_id": raw.get("object_id") or "",
        "object_name": raw.get("object_name") or "",
        "user": user,
        "author": raw.get("user") or user,
        "link": raw.get("link") or "",
        "category": categorize(app, type_, object_type).value,
        "severity": rate(app, text).value,
        "is_security_event": app == "admin_audit" or any(w in text.lower() for w in _SECURITY_WORDS),
        "is_data_event": app == "files" or object_type == "files" or "file" in type_ or "share" in type_,
        "is_user_event": app == "settings" or "user" in type_ or "group" in type_,
    }


def summarize(entries: Sequence[dict[str, Any]], *, top_users: int = 10) -> dict[str, Any]:
    by_user = Counter(e["user"] for e in entries)
    return {
        "total": len(entries),
        "by_severity": {s.value: sum(1 for e in entries if e["severity"] == s) for s in Severity},
        "by_category": {c.value: sum(1 for e in entries if e["category"] == c) for c in Category},
        "by_app": dict(Counter(e["app"] for e in entries)),
        "top_users": [{"user": u, "count": n} for u, n in by_user.most_common(top_users)],
        "security_events": sum(1 for e in entries if e["is_security_event"]),
    }


# ===== EXPORT =====

EXPORT_COLUMNS = (
    "timestamp", "user", "category", "severity", "subject",
    "message", "app", "type", "object_type", "object_name",
)


@dataclass(frozen=True, slots=True)
class AuditExport:
    content: str
    media_type: str
    filename: str
    records: int


def export_entries(
    entries: Iterable[dict[str, Any]],
    *,
    fmt: str = "csv",
    categories: Sequence[str] = (),
    severities: Sequence[str] = (),
    now: datetime | None = None,
) -> AuditExport:
    rows = [
        e
        for e in entries
        if (not categories or e["category"] in categories) and (not severities or e["severity"] in severities)
    ]
    stamp = (now or datetime.now(tz=UTC)).date().isoformat()

    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        writer.writerows([e.get(c, "") for c in EXPORT_COLUMNS] for e in rows)
        return AuditExport(buf.getvalue(), "text/csv", f"audit_logs_{stamp}.csv", len(rows))
    if fmt == "json":
        doc = {"exported_on": stamp, "total": len(rows), "entries": rows}
        return AuditExport(json.dumps(doc, indent=2, default=str), "application/json", f"audit_logs_{stamp}.json", len(rows))
    raise ValueError(f"unsupported export format: {fmt!r}")


class AuditClient(DispatchingClient):
    resource = ResourceKind.audit

    def __init__(self, ocs: OcsClient) -> None:
        super().__init__()
        self._ocs = ocs
        self.queries = {QueryKind.audit_log: self.activity}

    async def activity(self, key: CacheKey) -> dict[str, Any]:
        p = cast(AuditLogParams, key.params_model())
        params: dict[str, Any] = {"limit": p.limit}
        if p.since is not None:
            params["since"] = p.since
        try:
            data = await self._ocs.ocs("GET", ACTIVITY, params=params)
        except RemoteCallError as e:
            if e.status_code != HTTP_NOT_MODIFIED:
                raise
            data = []
        entries = [normalize_activity(a) for a in data or [] if isinstance(a, dict)]
        return {"entries": entries, "total": len(entries), "stats": summarize(entries)}


# --- Module Notes -----------------------------------------------------------
# The feed is read-only; no mutation invalidates it. Its one-minute freshness
# window in `cache.policy` bounds how long a new event stays invisible.
