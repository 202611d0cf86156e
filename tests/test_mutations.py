"""
tests.test_mutations

Mutation Coordinator: optimistic apply, commit, rollback and cancellation.
"""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from vdr_admin.auth.capabilities import Capability
from vdr_admin.cache.coordinator import Committed, MutationCoordinator, MutationStatus, RolledBack
from vdr_admin.cache.graph import every
from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind
from vdr_admin.cache.mutations import MutationSpec, Patch, RenameGroupParams, needs
from vdr_admin.errors import RemoteCallError, UnknownResourceKind

FINANCE = CacheKey.build("groups.detail", "finance")
GROUPS = CacheKey.build("groups.list")
ANN = CacheKey.build("users.detail", "ann")
USERS = CacheKey.build("users.list")

RENAME = {"group_id": "finance", "display_name": "Finance EU"}


async def _spin() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def seeded(store):
    store.write(FINANCE, {"id": "finance", "display_name": "Finance", "members": ["ann"], "user_count": 1})
    store.write(GROUPS, {"groups": [{"id": "finance", "display_name": "Finance"}, {"id": "legal"}], "total": 2})
    return store


@pytest.mark.asyncio
async def test_failed_rename_restores_the_original_name(seeded, backend, coordinator, notices) -> None:
    before = {FINANCE: seeded.state_of(FINANCE), GROUPS: seeded.state_of(GROUPS)}
    backend.writes[MutationKind.rename_group] = RemoteCallError(message="connection reset")
    gate = backend.hold_write(MutationKind.rename_group)

    task = asyncio.create_task(coordinator.mutate("groups.rename", RENAME))
    await _spin()
    assert seeded.peek(FINANCE).data["display_name"] == "Finance EU"
    assert seeded.peek(GROUPS).data["groups"][0]["display_name"] == "Finance EU"
    gate.set()
    outcome = await task

    assert isinstance(outcome, RolledBack)
    assert outcome.error.status_code is None
    assert set(outcome.error.reverted_keys) == {FINANCE, GROUPS}
    assert outcome.error.restored_values[FINANCE]["display_name"] == "Finance"
    for key, state in before.items():
        assert seeded.state_of(key) == state
        assert not seeded.state_of(key).invalidated
    assert notices.items() == [outcome.error]
    assert outcome.to_dict()["status"] == "rolled-back"


@pytest.mark.asyncio
async def test_permission_failure_is_reported_as_such(seeded, backend, coordinator) -> None:
    backend.writes[MutationKind.delete_group] = RemoteCallError(message="Forbidden", status_code=403)

    outcome = await coordinator.mutate(MutationKind.delete_group, {"group_id": "finance"})

    assert isinstance(outcome, RolledBack)
    assert outcome.error.is_permission_error
    assert [g["id"] for g in seeded.peek(GROUPS).data["groups"]] == ["finance", "legal"]


@pytest.mark.asyncio
async def test_commit_stores_server_values_then_invalidates(store, backend, coordinator, notices) -> None:
    store.write(ANN, {"id": "ann", "display_name": "Ann", "enabled": True})
    store.write(USERS, {"users": [{"id": "ann", "display_name": "Ann"}, {"id": "bob"}], "total": 2})
    server = {"id": "ann", "display_name": "Ann B.", "email": "ann@example.com", "enabled": True}
    backend.writes[MutationKind.update_user] = server
    gate = backend.hold_write(MutationKind.update_user)

    task = asyncio.create_task(coordinator.mutate("users.update", {"user_id": "ann", "display_name": "Ann B."}))
    await _spin()
    assert store.peek(USERS).data["users"][0]["display_name"] == "Ann B."
    assert store.peek(USERS).data["users"][1] == {"id": "bob"}
    gate.set()
    outcome = await task

    assert isinstance(outcome, Committed)
    assert outcome.payload == server
    assert store.state_of(ANN).payload == server
    assert store.state_of(ANN).invalidated
    assert store.state_of(USERS).invalidated
    assert len(notices) == 0
    assert outcome.to_dict()["invalidated"]


@pytest.mark.asyncio
async def test_unexpected_error_still_rolls_back_and_propagates(seeded, backend, coordinator) -> None:
    before = seeded.state_of(FINANCE)
    backend.writes[MutationKind.rename_group] = RuntimeError("client bug")

    with pytest.raises(RuntimeError):
        await coordinator.mutate("groups.rename", RENAME)

    assert seeded.state_of(FINANCE) == before


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abandon_the_mutation(seeded, backend, coordinator) -> None:
    gate = backend.hold_write(MutationKind.rename_group)

    task = asyncio.create_task(coordinator.mutate("groups.rename", RENAME))
    await _spin()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    gate.set()
    await coordinator.settle()

    assert len(backend.mutate_calls) == 1
    assert seeded.state_of(FINANCE).invalidated
    assert seeded.peek(FINANCE).data["display_name"] == "Finance EU"


def test_state_machine_rejects_illegal_transitions(seeded, coordinator) -> None:
    pending = coordinator.prepare("groups.rename", RENAME)
    assert pending.status is MutationStatus.idle

    with pytest.raises(RuntimeError):
        pending.transition(MutationStatus.committed)

    coordinator.apply_optimistic(pending)
    assert pending.status is MutationStatus.optimistic_applied
    assert set(pending.touched) == {FINANCE, GROUPS}

    pending.transition(MutationStatus.committed)
    assert pending.is_terminal
    with pytest.raises(RuntimeError):
        pending.transition(MutationStatus.rolled_back)


def test_missing_entries_are_not_predicted(store, coordinator) -> None:
    pending = coordinator.prepare("groups.rename", RENAME)
    coordinator.apply_optimistic(pending)

    assert pending.touched == ()
    assert store.keys() == []


@pytest.mark.asyncio
async def test_patch_outside_dependents_is_rejected(store, backend) -> None:
    store.write(USERS, {"users": []})
    catalog = {
        MutationKind.rename_group: MutationSpec(
            MutationKind.rename_group,
            RenameGroupParams,
            needs(Capability.manage_groups),
            (Patch(every(QueryKind.user_list), lambda payload, _params: {**payload, "touched": True}),),
        )
    }
    coordinator = MutationCoordinator(store=store, mutator=backend.mutate, catalog=catalog)

    with pytest.raises(ValueError):
        await coordinator.mutate(MutationKind.rename_group, RENAME)

    assert backend.mutate_calls == []
    assert store.peek(USERS).data == {"users": []}


@pytest.mark.asyncio
async def test_bad_params_and_kinds_are_rejected_before_any_call(backend, coordinator) -> None:
    with pytest.raises(ValidationError):
        await coordinator.mutate("groups.rename", {"group_id": "finance"})
    with pytest.raises(ValidationError):
        await coordinator.mutate("shares.create", {"path": "/a.pdf", "share_type": 0})
    with pytest.raises(ValidationError):
        await coordinator.mutate("files.delete-item", {"path": "/"})
    with pytest.raises(UnknownResourceKind):
        await coordinator.mutate("groups.explode", {})

    assert backend.mutate_calls == []
