"""
vdr_admin.cache.notifications

Notification sinks for failed mutations.

The coordinator only hands over a structured `MutationFailed`; presentation is
the sink's business.
"""

from __future__ import annotations

from collections import deque
from typing import Protocol

from vdr_admin.errors import MutationFailed
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)


class NotificationSink(Protocol):
    def notify(self, error: MutationFailed) -> None: ...


class LoggingNotificationSink:
    def notify(self, error: MutationFailed) -> None:
        log.warning(
            "mutation_failed_notice",
            kind=error.kind,
            status_code=error.status_code,
            error=error.message,
            reverted=[k.describe() for k in error.reverted_keys],
        )


class NotificationBuffer:
    """Bounded, newest-last buffer the HTTP layer drains for the browser."""

    def __init__(self, maxlen: int = 50) -> None:
        self._items: deque[MutationFailed] = deque(maxlen=maxlen)

    def notify(self, error: MutationFailed) -> None:
        self._items.append(error)

    def items(self) -> list[MutationFailed]:
        return list(self._items)

    def drain(self) -> list[MutationFailed]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
