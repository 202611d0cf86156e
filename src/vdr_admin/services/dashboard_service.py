"""
vdr_admin.services.dashboard_service

Dashboard session: composition root of the authorization and cache core for one
logged-in user.

Responsibilities:
- Own the identity store, the derived capability set, the resource cache and the
  mutation coordinator of one session.
- Expose the four core operations: `use_capabilities`, `check_access`,
  `read_resource`, `mutate_resource`.
- Consult the Permission Gate before any write reaches the coordinator.
- Reset derived state on login/logout so no user sees another user's cache.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import httpx

from vdr_admin.auth.capabilities import CapabilitySet, capabilities_for
from vdr_admin.auth.gate import Allow, Deny, Required, check
from vdr_admin.auth.identity import IdentityProvider, IdentityStore
from vdr_admin.auth.models import Identity
from vdr_admin.auth.roles import resolve_role
from vdr_admin.cache.coordinator import Committed, MutationCoordinator, RolledBack
from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind, QueryParams
from vdr_admin.cache.mutations import MutationParams
from vdr_admin.cache.notifications import LoggingNotificationSink, NotificationBuffer, NotificationSink
from vdr_admin.cache.policy import PolicyTable
from vdr_admin.cache.state import ResourceView
from vdr_admin.cache.store import Listener, ResourceCacheStore, ResourceSubscription
from vdr_admin.clients.audit import AuditClient
from vdr_admin.clients.base import ClientRegistry
from vdr_admin.clients.data_rooms import DataRoomsClient
from vdr_admin.clients.files import FilesClient
from vdr_admin.clients.groups import GroupsClient
from vdr_admin.clients.identity import NextcloudIdentityProvider
from vdr_admin.clients.ocs import OcsClient
from vdr_admin.clients.shares import SharesClient
from vdr_admin.clients.users import UsersClient
from vdr_admin.observability.logging import get_logger
from vdr_admin.settings import Settings

log = get_logger(__name__)

CapabilityListener = Callable[[CapabilitySet], None]


def build_registry(ocs: OcsClient) -> ClientRegistry:
    return ClientRegistry(
        [
            UsersClient(ocs),
            GroupsClient(ocs),
            DataRoomsClient(ocs),
            SharesClient(ocs),
            FilesClient(ocs),
            AuditClient(ocs),
        ]
    )


class DashboardSession:
    def __init__(
        self,
        *,
        identity_provider: IdentityProvider,
        clients: ClientRegistry,
        settings: Settings,
        sinks: Iterable[NotificationSink] = (),
        clock: Callable[[], float] = time.monotonic,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self._provider = identity_provider
        self._on_close = on_close

        self.identity = IdentityStore()
        self.notifications = NotificationBuffer(settings.notification_buffer_size)
        self.store = ResourceCacheStore(clients.fetch, policies=PolicyTable.from_settings(settings), clock=clock)
        self.coordinator = MutationCoordinator(
            store=self.store,
            mutator=clients.mutate,
            sinks=[LoggingNotificationSink(), self.notifications, *sinks],
        )

        self._capabilities = capabilities_for(None)
        self._capability_listeners: list[CapabilityListener] = []
        self.identity.subscribe(self._on_identity_changed)

    @classmethod
    def connect(
        cls,
        *,
        settings: Settings,
        username: str,
        password: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DashboardSession:
        """Wire a session against the document server with the user's own credentials."""

        ocs = OcsClient.create(settings=settings, username=username, password=password, transport=transport)
        return cls(
            identity_provider=NextcloudIdentityProvider(ocs),
            clients=build_registry(ocs),
            settings=settings,
            on_close=ocs.aclose,
        )

    # ------------------------------------------------------------ identity

    async def login(self) -> Identity | None:
        """Load the identity; None means the server rejected the credentials."""

        identity = await self._provider.get_current_identity()
        if identity is None:
            log.info("login_rejected", session_id=self.id)
            return None
        # A different user must never see the previous user's cache.
        if self.identity.current is not None and self.identity.current.id != identity.id:
            self.store.clear()
        self.identity.set(identity)
        log.info("login", session_id=self.id, user=identity.id, tier=self._capabilities.tier.value)
        return identity

    async def refresh(self) -> Identity | None:
        identity = await self._provider.get_current_identity()
        if identity is None:
            await self.logout()
            return None
        self.identity.set(identity)
        return identity

    async def logout(self) -> None:
        self.identity.clear()
        self.store.clear()
        self.notifications.drain()
        log.info("logout", session_id=self.id)

    def _on_identity_changed(self, identity: Identity | None) -> None:
        capabilities = capabilities_for(identity)
        if capabilities == self._capabilities:
            return
        self._capabilities = capabilities
        log.info(
            "capabilities_changed",
            session_id=self.id,
            tier=capabilities.tier.value,
            scope_groups=list(capabilities.scope_groups),
            grants=len(capabilities),
        )
        for listener in list(self._capability_listeners):
            listener(capabilities)

    # --------------------------------------------------------- capabilities

    def use_capabilities(self) -> CapabilitySet:
        return self._capabilities

    def subscribe_capabilities(self, listener: CapabilityListener) -> Callable[[], None]:
        self._capability_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._capability_listeners:
                self._capability_listeners.remove(listener)

        return _unsubscribe

    def check_access(self, required: Required) -> Allow | Deny:
        return check(required, self._capabilities)

    @property
    def role(self) -> str:
        return resolve_role(self.identity.current).tier.value

    # -------------------------------------------------------------- reads

    def read_resource(
        self,
        query: QueryKind | str,
        resource_id: str | int | None = None,
        params: QueryParams | Mapping[str, Any] | None = None,
        *,
        listener: Listener | None = None,
    ) -> ResourceSubscription:
        key = CacheKey.build(query, resource_id, params)
        return self.store.subscribe(key, listener)

    async def fetch_resource(
        self,
        query: QueryKind | str,
        resource_id: str | int | None = None,
        params: QueryParams | Mapping[str, Any] | None = None,
        *,
        wait_for_fresh: bool = False,
    ) -> ResourceView:
        """One-shot read for request/response callers."""

        key = CacheKey.build(query, resource_id, params)
        return await self.store.read(key, wait_for_fresh=wait_for_fresh)

    # ------------------------------------------------------------- writes

    async def mutate_resource(
        self,
        kind: MutationKind | str,
        params: MutationParams | Mapping[str, Any] | None = None,
    ) -> Committed | RolledBack | Deny:
        spec = self.coordinator.spec(kind)
        parsed = spec.parse(params)

        decision = check(spec.requirement(parsed), self._capabilities)
        room_requirement = spec.room_requirement(self._cached_room(parsed))
        if isinstance(decision, Allow) and room_requirement is not None:
            decision = check(room_requirement, self._capabilities)
        if isinstance(decision, Deny):
            log.info(
                "mutation_denied",
                session_id=self.id,
                kind=spec.kind.value,
                failed=decision.reason.failed,
                required=decision.reason.required,
            )
            return decision

        return await self.coordinator.mutate(spec.kind, parsed)

    def _cached_room(self, params: MutationParams) -> Mapping[str, Any] | None:
        folder_id = getattr(params, "folder_id", None)
        if folder_id is None:
            return None
        detail = self.store.peek(CacheKey.build(QueryKind.data_room_detail, folder_id))
        if detail is not None and isinstance(detail.data, dict):
            return detail.data
        listing = self.store.peek(CacheKey.build(QueryKind.data_room_list))
        rooms = listing.data.get("data_rooms", []) if listing is not None and isinstance(listing.data, dict) else []
        return next((room for room in rooms if room.get("id") == folder_id), None)

    # ---------------------------------------------------------- lifecycle

    async def aclose(self) -> None:
        await self.coordinator.aclose()
        await self.store.aclose()
        if self._on_close is not None:
            await self._on_close()


class SessionRegistry:
    """In-process sessions keyed by id (the `sid` claim of the bearer token)."""

    def __init__(self) -> None:
        self._sessions: dict[str, DashboardSession] = {}

    def add(self, session: DashboardSession) -> None:
        self._sessions[session.id] = session

    def get(self, session_id: str) -> DashboardSession | None:
        return self._sessions.get(session_id)

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.logout()
        await session.aclose()
        return True

    async def aclose(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


# --- Module Notes -----------------------------------------------------------
# Sessions live in process memory; a restart logs every browser out, which is the
# same as an expired token.
