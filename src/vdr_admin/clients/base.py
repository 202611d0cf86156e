"""
vdr_admin.clients.base

Resource client contract and the per-session client registry.

Responsibilities:
- Define `ResourceClient`: `fetch(key)` for reads, `mutate(kind, params)` for writes.
- Route a cache key or mutation kind to the client owning its resource kind.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Protocol

from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind, ResourceKind
from vdr_admin.cache.mutations import MutationParams
from vdr_admin.errors import UnknownResourceKind

QueryHandler = Callable[[CacheKey], Awaitable[Any]]
MutationHandler = Callable[[Any], Awaitable[Any]]


class ResourceClient(Protocol):
    resource: ResourceKind

    async def fetch(self, key: CacheKey) -> Any: ...

    async def mutate(self, kind: MutationKind, params: MutationParams) -> Any: ...


class DispatchingClient:
    """
    Base for the concrete clients: subclasses fill `queries`/`mutations` with
    bound handlers in `__init__`.
    """

    resource: ResourceKind

    def __init__(self) -> None:
        self.queries: dict[QueryKind, QueryHandler] = {}
        self.mutations: dict[MutationKind, MutationHandler] = {}

    async def fetch(self, key: CacheKey) -> Any:
        handler = self.queries.get(key.query)
        if handler is None:
            raise UnknownResourceKind(f"{type(self).__name__} cannot read {key.query.value}")
        return await handler(key)

    async def mutate(self, kind: MutationKind, params: MutationParams) -> Any:
        handler = self.mutations.get(kind)
        if handler is None:
            raise UnknownResourceKind(f"{type(self).__name__} cannot perform {kind.value}")
        return await handler(params)


class ClientRegistry:
    def __init__(self, clients: Iterable[ResourceClient] = ()) -> None:
        self._clients: dict[ResourceKind, ResourceClient] = {c.resource: c for c in clients}

    def register(self, client: ResourceClient) -> None:
        self._clients[client.resource] = client

    def client_for(self, resource: ResourceKind) -> ResourceClient:
        try:
            return self._clients[resource]
        except KeyError as e:
            raise UnknownResourceKind(f"no client registered for {resource.value}") from e

    @property
    def clients(self) -> Mapping[ResourceKind, ResourceClient]:
        return dict(self._clients)

    async def fetch(self, key: CacheKey) -> Any:
        return await self.client_for(key.resource).fetch(key)

    async def mutate(self, kind: MutationKind, params: MutationParams) -> Any:
        return await self.client_for(kind.resource).mutate(kind, params)
