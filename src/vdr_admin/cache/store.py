"""
vdr_admin.cache.store

Resource Cache Store: keyed snapshots of remote resources with staleness and
retention timers.

Responsibilities:
- Serve reads from cache while fresh; refetch in the background once stale.
- De-duplicate concurrent fetches of one key (callers join the in-flight fetch).
- Apply writes, prefix/exact invalidation and explicit eviction.
- Capture and restore exact entry snapshots for mutation rollback.
- Evict unlistened entries lazily once their retention window has passed.

Concurrency model:
- Single event loop. Fetches run as tasks owned by the store; callers await them
  through `asyncio.shield`, so a cancelled caller never cancels the shared fetch.
- Every write bumps the entry's generation. A fetch that started under an older
  generation discards its result.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from vdr_admin.cache.keys import CacheKey, KeyPattern, PatternLike, as_pattern, pattern_matches
from vdr_admin.cache.policy import PolicyTable
from vdr_admin.cache.state import EMPTY, EntryState, ResourceView
from vdr_admin.errors import RemoteCallError, TransientFetchError
from vdr_admin.observability.logging import get_logger

log = get_logger(__name__)

Fetcher = Callable[[CacheKey], Awaitable[Any]]
Listener = Callable[[ResourceView], None]
Snapshot = dict[CacheKey, EntryState | None]


class _Entry:
    __slots__ = ("key", "state", "task", "listeners", "generation")

    def __init__(self, key: CacheKey) -> None:
        self.key = key
        self.state: EntryState = EMPTY
        self.task: asyncio.Task[None] | None = None
        self.listeners: list[Listener] = []
        self.generation = 0


class ResourceSubscription:
    """
    A live view of one key. `view` always reflects the current entry; the
    optional listener is called on every change until `unsubscribe()`.
    """

    def __init__(self, store: ResourceCacheStore, key: CacheKey, entry: _Entry, listener: Listener | None) -> None:
        self._store = store
        self._entry = entry
        self._listener = listener
        self.key = key
        self.active = True

    def _deliver(self, view: ResourceView) -> None:
        if self.active and self._listener is not None:
            self._listener(view)

    @property
    def view(self) -> ResourceView:
        return self._store._view(self.key, self._entry)

    async def wait(self) -> ResourceView:
        await self._store._join(self._entry)
        return self.view

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self._entry, self._deliver)


class ResourceCacheStore:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        policies: PolicyTable | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._policies = policies or PolicyTable()
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ reads

    async def read(self, key: CacheKey, *, wait_for_fresh: bool = False) -> ResourceView:
        """
        Fresh -> cached view. Stale with data -> cached view plus a background
        refetch (or the refetched view when `wait_for_fresh`). No data -> waits
        for the (possibly shared) fetch.
        """

        self._collect()
        entry = self._entry(key)
        state = entry.state
        if not state.is_stale(self._clock()):
            return self._view(key, entry)

        self._ensure_fetch(key, entry)
        if state.has_payload and not wait_for_fresh:
            return self._view(key, entry)

        await self._join(entry)
        return self._view(key, entry)

    def peek(self, key: CacheKey) -> ResourceView | None:
        entry = self._entries.get(key)
        return None if entry is None else self._view(key, entry)

    def state_of(self, key: CacheKey) -> EntryState | None:
        entry = self._entries.get(key)
        return None if entry is None else entry.state

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    def keys_matching(self, pattern: PatternLike) -> list[CacheKey]:
        p = as_pattern(pattern)
        return [k for k in self._entries if pattern_matches(p, k)]

    def subscribe(self, key: CacheKey, listener: Listener | None = None) -> ResourceSubscription:
        """Attach a listener and start a fetch when the entry is missing or stale."""

        self._collect()
        entry = self._entry(key)
        sub = ResourceSubscription(self, key, entry, listener)
        entry.listeners.append(sub._deliver)
        if entry.state.is_stale(self._clock()):
            self._ensure_fetch(key, entry)
        return sub

    # ----------------------------------------------------------------- writes

    def write(self, key: CacheKey, value: Any) -> None:
        entry = self._entry(key)
        now = self._clock()
        policy = self._policies.for_query(key.query)
        entry.generation += 1
        entry.state = EntryState(
            payload=value,
            has_payload=True,
            fetched_at=now,
            fresh_until=now + policy.fresh_seconds,
            evict_after=max(entry.state.evict_after, now + policy.retain_seconds),
        )
        self._emit(key, entry)

    def invalidate(self, pattern: PatternLike) -> list[CacheKey]:
        """
        Mark every matching entry stale. Entries someone is looking at (listeners
        or a pending fetch) are refetched in the background.
        """

        self._collect()
        p = as_pattern(pattern)
        matched = [k for k in self._entries if pattern_matches(p, k)]
        for key in matched:
            entry = self._entries[key]
            refetch = bool(entry.listeners) or entry.task is not None
            entry.generation += 1
            entry.task = None
            entry.state = replace(entry.state, invalidated=True)
            if refetch:
                self._ensure_fetch(key, entry)
            self._emit(key, entry)
        if matched:
            log.debug("cache_invalidated", pattern=_describe(p), keys=len(matched))
        return matched

    def evict(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.generation += 1
        entry.task = None
        if entry.listeners:
            entry.state = EMPTY
            self._emit(key, entry)
        else:
            del self._entries[key]
        return True

    def clear(self) -> None:
        for key, entry in list(self._entries.items()):
            entry.generation += 1
            entry.task = None
            if entry.listeners:
                entry.state = EMPTY
                self._emit(key, entry)
            else:
                del self._entries[key]
        log.info("cache_cleared")

    # -------------------------------------------------------- snapshot/restore

    def snapshot(self, keys: Iterable[CacheKey]) -> Snapshot:
        snap: Snapshot = {}
        for key in keys:
            entry = self._entries.get(key)
            snap[key] = None if entry is None else entry.state.detached()
        return snap

    def restore(self, snapshot: Mapping[CacheKey, EntryState | None]) -> None:
        for key, state in snapshot.items():
            entry = self._entries.get(key)
            if entry is None:
                if state is None:
                    continue
                entry = self._entry(key)
            entry.generation += 1
            if state is None and not entry.listeners:
                del self._entries[key]
                continue
            entry.state = EMPTY if state is None else state.detached()
            self._emit(key, entry)

    # ------------------------------------------------------------- lifecycle

    async def settle(self) -> None:
        """Wait until no background fetch is pending (tests, shutdown)."""

        while True:
            pending = [t for t in self._background if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        self._background.clear()
        self._entries.clear()

    # -------------------------------------------------------------- internals

    def _entry(self, key: CacheKey) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry(key)
        return entry

    def _view(self, key: CacheKey, entry: _Entry) -> ResourceView:
        state = entry.state
        fetching = entry.task is not None
        return ResourceView(
            key=key,
            data=state.payload if state.has_payload else None,
            has_data=state.has_payload,
            is_loading=fetching and not state.has_payload,
            is_fetching=fetching,
            is_stale=state.is_stale(self._clock()),
            error=state.error,
            updated_at=state.fetched_at,
        )

    def _emit(self, key: CacheKey, entry: _Entry) -> None:
        if not entry.listeners:
            return
        view = self._view(key, entry)
        # Copy: a listener may unsubscribe while being notified.
        for listener in list(entry.listeners):
            try:
                listener(view)
            except Exception:
                log.exception("cache_listener_failed", key=key.describe())

    def _detach(self, entry: _Entry, deliver: Listener) -> None:
        if deliver in entry.listeners:
            entry.listeners.remove(deliver)
        if not entry.listeners:
            # Retention counts from the moment the last reader left.
            retain = self._policies.for_query(entry.key.query).retain_seconds
            entry.state = replace(entry.state, evict_after=max(entry.state.evict_after, self._clock() + retain))

    def _ensure_fetch(self, key: CacheKey, entry: _Entry) -> asyncio.Task[None]:
        if entry.task is None:
            entry.task = asyncio.create_task(self._run_fetch(key, entry), name=f"fetch:{key.describe()}")
            self._track(entry.task)
            self._emit(key, entry)
        return entry.task

    async def _join(self, entry: _Entry) -> None:
        # A superseding fetch may replace the task while we wait; follow it.
        while entry.task is not None:
            await asyncio.shield(entry.task)

    async def _run_fetch(self, key: CacheKey, entry: _Entry) -> None:
        me = asyncio.current_task()
        generation = entry.generation
        try:
            payload = await self._fetcher(key)
        except RemoteCallError as err:
            log.warning(
                "fetch_failed",
                key=key.describe(),
                status_code=err.status_code,
                error=err.message,
            )
            if entry.task is me:
                entry.task = None
            if entry.generation == generation:
                entry.state = replace(entry.state, error=TransientFetchError.from_remote(key, err))
            self._emit(key, entry)
            return
        except BaseException:
            if entry.task is me:
                entry.task = None
            raise

        if entry.task is me:
            entry.task = None
        if entry.generation != generation:
            log.debug("fetch_superseded", key=key.describe())
            return

        now = self._clock()
        policy = self._policies.for_query(key.query)
        entry.state = EntryState(
            payload=payload,
            has_payload=True,
            fetched_at=now,
            fresh_until=now + policy.fresh_seconds,
            evict_after=max(entry.state.evict_after, now + policy.retain_seconds),
        )
        self._emit(key, entry)

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                log.error("background_fetch_failed", task=t.get_name(), exc_info=t.exception())

        task.add_done_callback(_done)

    def _collect(self) -> None:
        now = self._clock()
        expired = [
            k
            for k, e in self._entries.items()
            if not e.listeners and e.task is None and e.state.evict_after <= now
        ]
        for key in expired:
            del self._entries[key]


def _describe(pattern: KeyPattern | CacheKey) -> str:
    return pattern.describe()


# --- Module Notes -----------------------------------------------------------
# Payloads are treated as immutable: reducers build new objects and snapshots take
# deep copies, so a restored entry compares equal to the state it was taken from.
