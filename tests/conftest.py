"""
tests.conftest

Shared fakes for the core tests.

Responsibilities:
- A manual clock so freshness windows are tested without sleeping.
- A scriptable backend standing in for the resource clients (reads and writes),
  with gates to hold a remote call open while the test inspects the cache.
- A routed document-server stand-in for `httpx.MockTransport`.
- Identity fixtures for the three role tiers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from vdr_admin.auth.models import Identity
from vdr_admin.cache.coordinator import MutationCoordinator
from vdr_admin.cache.keys import CacheKey, MutationKind
from vdr_admin.cache.mutations import MutationParams
from vdr_admin.cache.notifications import NotificationBuffer
from vdr_admin.cache.policy import PolicyTable
from vdr_admin.cache.store import ResourceCacheStore
from vdr_admin.errors import RemoteCallError


class ManualClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    `reads[key]` is a payload, a `RemoteCallError`, or a callable producing
    either. `writes[kind]` works the same for mutations. `hold(...)` parks the
    next call until the returned event is set.
    """

    def __init__(self) -> None:
        self.reads: dict[CacheKey, Any] = {}
        self.writes: dict[MutationKind, Any] = {}
        self.fetch_calls: list[CacheKey] = []
        self.mutate_calls: list[tuple[MutationKind, MutationParams]] = []
        self._read_gates: dict[CacheKey, asyncio.Event] = {}
        self._write_gates: dict[MutationKind, asyncio.Event] = {}

    def hold_read(self, key: CacheKey) -> asyncio.Event:
        gate = self._read_gates[key] = asyncio.Event()
        return gate

    def hold_write(self, kind: MutationKind) -> asyncio.Event:
        gate = self._write_gates[kind] = asyncio.Event()
        return gate

    @staticmethod
    def _resolve(value: Any, *args: Any) -> Any:
        if callable(value) and not isinstance(value, RemoteCallError):
            value = value(*args)
        if isinstance(value, BaseException):
            raise value
        return value

    async def fetch(self, key: CacheKey) -> Any:
        self.fetch_calls.append(key)
        gate = self._read_gates.pop(key, None)
        if gate is not None:
            await gate.wait()
        if key not in self.reads:
            raise RemoteCallError(message=f"no fake payload for {key.describe()}", status_code=404)
        return self._resolve(self.reads[key], key)

    async def mutate(self, kind: MutationKind, params: MutationParams) -> Any:
        self.mutate_calls.append((kind, params))
        gate = self._write_gates.pop(kind, None)
        if gate is not None:
            await gate.wait()
        return self._resolve(self.writes.get(kind, {}), params)

    def fetch_count(self, key: CacheKey) -> int:
        return sum(1 for k in self.fetch_calls if k == key)


class FakeServer:
    """Routes `(method, path)` to a response factory and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def envelope(data: Any, *, statuscode: int = 100, message: str = "OK") -> dict[str, Any]:
        status = "ok" if statuscode in (100, 200) else "failure"
        return {"ocs": {"meta": {"status": status, "statuscode": statuscode, "message": message}, "data": data}}

    def ocs(
        self,
        method: str,
        path: str,
        data: Any = None,
        *,
        status: int = 200,
        statuscode: int = 100,
        message: str = "OK",
    ) -> None:
        body = self.envelope(data, statuscode=statuscode, message=message)
        self.routes[(method, path)] = lambda _r: httpx.Response(status, json=body)

    def raw(self, method: str, path: str, factory: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, path)] = factory

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        factory = self.routes.get((request.method, request.url.path))
        if factory is None:
            return httpx.Response(404, json=self.envelope(None, statuscode=404, message="not found"))
        return factory(request)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store(backend: FakeBackend, clock: ManualClock) -> ResourceCacheStore:
    return ResourceCacheStore(backend.fetch, policies=PolicyTable(), clock=clock)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def notices() -> NotificationBuffer:
    return NotificationBuffer()


@pytest.fixture
def coordinator(
    store: ResourceCacheStore, backend: FakeBackend, notices: NotificationBuffer
) -> MutationCoordinator:
    return MutationCoordinator(store=store, mutator=backend.mutate, sinks=[notices])


@pytest.fixture
def make_identity() -> Callable[..., Identity]:
    def _make(user_id: str = "alice", *, groups: tuple[str, ...] = (), delegated: tuple[str, ...] = ()) -> Identity:
        return Identity.build(id=user_id, groups=groups, delegated_admin_groups=delegated)

    return _make


@pytest.fixture
def admin_identity() -> Identity:
    return Identity.build(id="root", display_name="Root", groups=("admin",))


@pytest.fixture
def subadmin_identity() -> Identity:
    return Identity.build(
        id="sam",
        display_name="Sam",
        groups=("finance-team",),
        delegated_admin_groups=("finance-team",),
    )


@pytest.fixture
def standard_identity() -> Identity:
    return Identity.build(id="bob", display_name="Bob", groups=("staff",))


# --- Module Notes -----------------------------------------------------------
# Fixtures are sync: stores and coordinators only create tasks once an async test
# calls into them, so they bind to that test's event loop.
