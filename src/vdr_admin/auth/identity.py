"""
vdr_admin.auth.identity

The single observable "current identity" of a dashboard session.

Responsibilities:
- Define the identity provider contract consumed by the session.
- Hold the current `Identity` snapshot with an explicit lifecycle
  (set on login, replaced on refresh, cleared on logout).
- Notify subscribers on every change.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from vdr_admin.auth.models import Identity
from vdr_admin.errors import IdentityUnavailable
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

IdentityListener = Callable[[Identity | None], None]


class IdentityProvider(Protocol):
    async def get_current_identity(self) -> Identity | None: ...


class IdentityStore:
    def __init__(self, initial: Identity | None = None) -> None:
        self._current = initial
        self._listeners: list[IdentityListener] = []

    @property
    def current(self) -> Identity | None:
        return self._current

    def require(self) -> Identity:
        if self._current is None:
            raise IdentityUnavailable("no identity loaded")
        return self._current

    def set(self, identity: Identity | None) -> None:
        if identity == self._current:
            return
        previous = self._current
        self._current = identity
        log.info(
            "identity_changed",
            previous=previous.id if previous else None,
            current=identity.id if identity else None,
        )
        self._emit()

    def clear(self) -> None:
        self.set(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        # Copy: listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            listener(self._current)


# --- Module Notes -----------------------------------------------------------
# Equal snapshots do not notify, so a refresh that changes nothing does not
# recompute capabilities downstream.
