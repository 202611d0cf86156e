"""
vdr_admin.cache.coordinator

Mutation Coordinator: optimistic write, remote call, commit or rollback.

Responsibilities:
- Run every write through one explicit state machine:
  `idle -> optimistic-applied -> committed | rolled-back`.
- Snapshot touched cache entries and apply optimistic values without yielding
  to the event loop in between.
- On success: store authoritative values, then invalidate every dependent
  pattern from the invalidation graph.
- On failure: restore the snapshot exactly, skip invalidation and hand a
  `MutationFailed` to the notification sinks.

Concurrency:
- The remote call and its commit/rollback run in a coordinator-owned task. A
  caller that is cancelled while waiting does not cancel the mutation; it still
  reaches exactly one terminal state.
- No cross-mutation locking: overlapping commits resolve last-writer-wins.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from vdr_admin.cache.graph import patterns_for
from vdr_admin.cache.keys import CacheKey, KeyPattern, MutationKind
from vdr_admin.cache.mutations import MUTATIONS, MutationParams, MutationSpec
from vdr_admin.cache.notifications import NotificationSink
from vdr_admin.cache.store import ResourceCacheStore, Snapshot
from vdr_admin.errors import MutationFailed, RemoteCallError, UnknownResourceKind
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

Mutator = Callable[[MutationKind, MutationParams], Awaitable[Any]]


class MutationStatus(StrEnum):
    idle = "idle"
    optimistic_applied = "optimistic-applied"
    committed = "committed"
    rolled_back = "rolled-back"


_TRANSITIONS: dict[MutationStatus, frozenset[MutationStatus]] = {
    MutationStatus.idle: frozenset({MutationStatus.optimistic_applied}),
    MutationStatus.optimistic_applied: frozenset({MutationStatus.committed, MutationStatus.rolled_back}),
}


@dataclass(slots=True)
class PendingMutation:
    id: str
    kind: MutationKind
    params: MutationParams
    patterns: list[KeyPattern]
    touched: tuple[CacheKey, ...] = ()
    snapshot: Snapshot = field(default_factory=dict)
    optimistic: dict[CacheKey, Any] = field(default_factory=dict)
    status: MutationStatus = MutationStatus.idle

    def transition(self, to: MutationStatus) -> None:
        if to not in _TRANSITIONS.get(self.status, frozenset()):
            raise RuntimeError(f"mutation {self.id}: illegal transition {self.status} -> {to}")
        self.status = to

    @property
    def is_terminal(self) -> bool:
        return self.status in (MutationStatus.committed, MutationStatus.rolled_back)


@dataclass(frozen=True, slots=True)
class Committed:
    mutation_id: str
    kind: MutationKind
    payload: Any
    invalidated: tuple[CacheKey, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": MutationStatus.committed.value,
            "mutation_id": self.mutation_id,
            "kind": self.kind.value,
            "payload": self.payload,
            "invalidated": [k.describe() for k in self.invalidated],
        }


@dataclass(frozen=True, slots=True)
class RolledBack:
    mutation_id: str
    kind: MutationKind
    error: MutationFailed

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": MutationStatus.rolled_back.value,
            "mutation_id": self.mutation_id,
            "kind": self.kind.value,
            "error": self.error.to_dict(),
        }


class MutationCoordinator:
    def __init__(
        self,
        *,
        store: ResourceCacheStore,
        mutator: Mutator,
        sinks: Sequence[NotificationSink] = (),
        catalog: Mapping[MutationKind, MutationSpec] | None = None,
    ) -> None:
        self._store = store
        self._mutator = mutator
        self._sinks = list(sinks)
        self._catalog = MUTATIONS if catalog is None else catalog
        self._inflight: set[asyncio.Task[Any]] = set()

    def spec(self, kind: MutationKind | str) -> MutationSpec:
        try:
            return self._catalog[MutationKind(kind)]
        except (KeyError, ValueError) as e:
            raise UnknownResourceKind(f"unknown mutation kind: {kind!r}") from e

    def prepare(self, kind: MutationKind | str, params: MutationParams | Mapping[str, Any] | None) -> PendingMutation:
        spec = self.spec(kind)
        parsed = spec.parse(params)
        return PendingMutation(
            id=str(uuid.uuid4()),
            kind=spec.kind,
            params=parsed,
            patterns=patterns_for(spec.kind, parsed.model_dump()),
        )

    async def mutate(
        self, kind: MutationKind | str, params: MutationParams | Mapping[str, Any] | None
    ) -> Committed | RolledBack:
        pending = self.prepare(kind, params)
        self.apply_optimistic(pending)

        task = asyncio.create_task(self._settle(pending), name=f"mutation:{pending.kind.value}:{pending.id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    def apply_optimistic(self, pending: PendingMutation) -> None:
        """Snapshot + predicted values, with no await in between."""

        spec = self.spec(pending.kind)
        raw = pending.params.model_dump()

        originals: dict[CacheKey, Any] = {}
        current: dict[CacheKey, Any] = {}
        for patch in spec.patches:
            pattern = patch.target.pattern(raw)
            for key in self._store.keys_matching(pattern):
                state = self._store.state_of(key)
                if state is None or not state.has_payload:
                    continue
                originals.setdefault(key, state.payload)
                current[key] = patch.reducer(current.get(key, state.payload), raw)

        changed = {k: v for k, v in current.items() if v is not originals[k]}
        self._check_touched(pending, changed)

        pending.touched = tuple(changed)
        pending.snapshot = self._store.snapshot(pending.touched)
        pending.optimistic = changed
        for key, value in changed.items():
            self._store.write(key, value)
        pending.transition(MutationStatus.optimistic_applied)

    async def _settle(self, pending: PendingMutation) -> Committed | RolledBack:
        try:
            response = await self._mutator(pending.kind, pending.params)
        except RemoteCallError as err:
            return self._rollback(pending, err)
        except BaseException:
            # Not an expected remote failure: still undo the prediction, then propagate.
            pending.transition(MutationStatus.rolled_back)
            self._store.restore(pending.snapshot)
            log.error("mutation_aborted", mutation_id=pending.id, kind=pending.kind.value)
            raise
        return self._commit(pending, response)

    def _commit(self, pending: PendingMutation, response: Any) -> Committed:
        writes = self.spec(pending.kind).commit_writes(pending.params, response)
        self._check_touched(pending, writes)
        pending.transition(MutationStatus.committed)
        for key, value in writes.items():
            self._store.write(key, value)

        invalidated: list[CacheKey] = []
        for pattern in pending.patterns:
            invalidated.extend(self._store.invalidate(pattern))
        invalidated = list(dict.fromkeys(invalidated))

        log.info(
            "mutation_committed",
            mutation_id=pending.id,
            kind=pending.kind.value,
            optimistic=len(pending.touched),
            invalidated=len(invalidated),
        )
        return Committed(
            mutation_id=pending.id,
            kind=pending.kind,
            payload=response,
            invalidated=tuple(invalidated),
        )

    def _rollback(self, pending: PendingMutation, err: RemoteCallError) -> RolledBack:
        pending.transition(MutationStatus.rolled_back)
        self._store.restore(pending.snapshot)

        failure = MutationFailed(
            kind=pending.kind.value,
            message=err.message,
            status_code=err.status_code,
            reverted_keys=pending.touched,
            restored_values={k: s.payload for k, s in pending.snapshot.items() if s is not None and s.has_payload},
        )
        log.warning(
            "mutation_rolled_back",
            mutation_id=pending.id,
            kind=pending.kind.value,
            status_code=err.status_code,
            error=err.message,
            reverted=len(pending.touched),
        )
        for sink in self._sinks:
            sink.notify(failure)
        return RolledBack(mutation_id=pending.id, kind=pending.kind, error=failure)

    def _check_touched(self, pending: PendingMutation, keys: Iterable[CacheKey]) -> None:
        stray = [k for k in keys if not any(p.matches(k) for p in pending.patterns)]
        if stray:
            raise ValueError(
                f"{pending.kind.value} touches keys outside its dependents: "
                + ", ".join(k.describe() for k in stray)
            )

    async def settle(self) -> None:
        while True:
            pending = [t for t in self._inflight if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        # Pending writes are awaited, never cancelled: the remote call is already issued.
        await self.settle()


# --- Module Notes -----------------------------------------------------------
# `restored_values` carries the pre-mutation payloads, so a failed rename can
# report the name the user is looking at again.
# Mutations are not serialized against each other. When two optimistic writes
# overlap on a key and both fail, each restores its own snapshot, so the key
# can end on the first one's optimistic value until its freshness window ends.
