"""
tests.test_invalidation

Invalidation Graph table and its effect on a populated cache.

Responsibilities:
- Pin every mutation kind's dependent views (a missing row is a stale-UI bug).
- Check that a committed mutation marks exactly its dependents stale.
"""

from __future__ import annotations

from typing import Any

import pytest

from vdr_admin.cache.coordinator import Committed, RolledBack
from vdr_admin.cache.graph import dependents_of, patterns_for
from vdr_admin.cache.keys import CacheKey, KeyPattern, MutationKind, QueryKind
from vdr_admin.errors import RemoteCallError, UnknownResourceKind

M = MutationKind

_USER_LISTS = {"users.list(*)", "users.search(*)"}
_GROUP_LISTS = {"groups.list(*)", "groups.search(*)"}
_ROOM_ACCESS = {"data-rooms.list(*)", "data-rooms.detail(folder_id)", "files.list(*)", "files.properties(*)"}
_ALL_SHARES = {"shares.list(*)", "shares.detail(*)", "shares.by-path(*)"}
_MEMBERSHIP = {
    *_USER_LISTS,
    "users.detail(user_id)",
    "users.groups(user_id)",
    *_GROUP_LISTS,
    "groups.detail(group_id)",
    "groups.member-counts(*)",
}
_SUBADMIN = {
    *_USER_LISTS,
    "users.detail(user_id)",
    "users.subadmin-groups(user_id)",
    "groups.detail(group_id)",
    "groups.subadmins(group_id)",
}
_PROFILE = {*_USER_LISTS, "users.detail(user_id)"}
_SHARE_CHANGE = {"shares.list(*)", "shares.detail(share_id)", "shares.by-path(path)"}

EXPECTED: dict[MutationKind, set[str]] = {
    M.create_user: {
        *_USER_LISTS,
        "users.detail(user_id)",
        "users.groups(user_id)",
        "users.subadmin-groups(user_id)",
        *_GROUP_LISTS,
        "groups.detail(*)",
        "groups.member-counts(*)",
        "groups.subadmins(*)",
    },
    M.update_user: _PROFILE,
    M.enable_user: _PROFILE,
    M.disable_user: _PROFILE,
    M.delete_user: {
        *_USER_LISTS,
        "users.detail(user_id)",
        "users.groups(user_id)",
        "users.subadmin-groups(user_id)",
        *_GROUP_LISTS,
        "groups.detail(*)",
        "groups.member-counts(*)",
        "groups.subadmins(*)",
    },
    M.add_user_to_group: _MEMBERSHIP,
    M.remove_user_from_group: _MEMBERSHIP,
    M.promote_subadmin: _SUBADMIN,
    M.demote_subadmin: _SUBADMIN,
    M.create_group: {*_GROUP_LISTS, "groups.detail(group_id)"},
    M.rename_group: {*_GROUP_LISTS, "groups.detail(group_id)"},
    M.delete_group: {
        *_GROUP_LISTS,
        "groups.detail(group_id)",
        "groups.member-counts(*)",
        "groups.subadmins(group_id)",
        "data-rooms.list(*)",
        "data-rooms.detail(*)",
        *_USER_LISTS,
        "users.detail(*)",
        "users.groups(*)",
        "users.subadmin-groups(*)",
        *_ALL_SHARES,
        "files.list(*)",
        "files.properties(*)",
    },
    M.create_data_room: {"data-rooms.list(*)", "files.list(*)"},
    M.update_data_room: _ROOM_ACCESS,
    M.delete_data_room: {*_ROOM_ACCESS, *_ALL_SHARES},
    M.add_data_room_group: _ROOM_ACCESS,
    M.set_data_room_group_permissions: _ROOM_ACCESS,
    M.remove_data_room_group: _ROOM_ACCESS,
    M.create_share: {"shares.list(*)", "shares.by-path(path)"},
    M.update_share: _SHARE_CHANGE,
    M.delete_share: _SHARE_CHANGE,
    M.create_folder: {"files.list(*)", "files.properties(parent of path)"},
    M.delete_item: {
        "files.list(*)",
        "files.properties(subtree of path)",
        "files.properties(parent of path)",
        "shares.list(*)",
        "shares.detail(*)",
        "shares.by-path(subtree of path)",
    },
    M.move_item: {
        "files.list(*)",
        "files.properties(subtree of source)",
        "files.properties(parent of source)",
        "files.properties(subtree of destination)",
        "files.properties(parent of destination)",
        "shares.list(*)",
        "shares.detail(*)",
        "shares.by-path(subtree of source)",
        "shares.by-path(subtree of destination)",
    },
    M.copy_item: {
        "files.list(*)",
        "files.properties(subtree of destination)",
        "files.properties(parent of destination)",
    },
}

SAMPLE_PARAMS: dict[MutationKind, dict[str, Any]] = {
    M.create_user: {"user_id": "ann", "password": "s3cret-pass"},
    M.update_user: {"user_id": "ann", "display_name": "Ann"},
    M.enable_user: {"user_id": "ann"},
    M.disable_user: {"user_id": "ann"},
    M.delete_user: {"user_id": "ann"},
    M.add_user_to_group: {"user_id": "ann", "group_id": "finance"},
    M.remove_user_from_group: {"user_id": "ann", "group_id": "finance"},
    M.promote_subadmin: {"user_id": "ann", "group_id": "finance"},
    M.demote_subadmin: {"user_id": "ann", "group_id": "finance"},
    M.create_group: {"group_id": "finance"},
    M.rename_group: {"group_id": "finance", "display_name": "Finance EU"},
    M.delete_group: {"group_id": "finance"},
    M.create_data_room: {"mount_point": "Deal X"},
    M.update_data_room: {"folder_id": 7, "quota": 1024},
    M.delete_data_room: {"folder_id": 7},
    M.add_data_room_group: {"folder_id": 7, "group_id": "finance"},
    M.set_data_room_group_permissions: {"folder_id": 7, "group_id": "finance", "permissions": 1},
    M.remove_data_room_group: {"folder_id": 7, "group_id": "finance"},
    M.create_share: {"path": "/docs/a.pdf", "share_type": 3},
    M.update_share: {"share_id": "12", "path": "/docs/a.pdf", "note": "for review"},
    M.delete_share: {"share_id": "12", "path": "/docs/a.pdf"},
    M.create_folder: {"path": "/docs/new"},
    M.delete_item: {"path": "/docs/a.pdf"},
    M.move_item: {"source": "/docs/a.pdf", "destination": "/archive/a.pdf"},
    M.copy_item: {"source": "/docs/a.pdf", "destination": "/archive/a.pdf"},
}

POPULATED: list[CacheKey] = [
    CacheKey.build("users.list"),
    CacheKey.build("users.search", params={"term": "ann"}),
    CacheKey.build("users.detail", "ann"),
    CacheKey.build("users.detail", "bob"),
    CacheKey.build("users.groups", "ann"),
    CacheKey.build("users.groups", "bob"),
    CacheKey.build("users.subadmin-groups", "ann"),
    CacheKey.build("groups.list"),
    CacheKey.build("groups.search", params={"term": "fin"}),
    CacheKey.build("groups.detail", "finance"),
    CacheKey.build("groups.detail", "legal"),
    CacheKey.build("groups.member-counts", params={"group_ids": ["finance"]}),
    CacheKey.build("groups.subadmins", "finance"),
    CacheKey.build("groups.subadmins", "legal"),
    CacheKey.build("data-rooms.list"),
    CacheKey.build("data-rooms.detail", 7),
    CacheKey.build("data-rooms.detail", 8),
    CacheKey.build("shares.list"),
    CacheKey.build("shares.detail", "12"),
    CacheKey.build("shares.detail", "13"),
    CacheKey.build("shares.by-path", "/docs/a.pdf"),
    CacheKey.build("shares.by-path", "/other.pdf"),
    CacheKey.build("files.list", "/docs"),
    CacheKey.build("files.list", "/"),
    CacheKey.build("files.properties", "/docs"),
    CacheKey.build("files.properties", "/docs/a.pdf"),
    CacheKey.build("files.properties", "/archive"),
    CacheKey.build("files.properties", "/other"),
]


def test_every_mutation_kind_has_a_row() -> None:
    assert set(EXPECTED) == set(MutationKind)
    assert set(SAMPLE_PARAMS) == set(MutationKind)


@pytest.mark.parametrize("kind", list(MutationKind), ids=lambda k: k.value)
def test_dependents_table(kind: MutationKind) -> None:
    assert {d.describe() for d in dependents_of(kind)} == EXPECTED[kind]


def test_unknown_kind_has_no_rule() -> None:
    with pytest.raises(UnknownResourceKind):
        dependents_of("groups.explode")


def test_patterns_derive_ids_from_params() -> None:
    patterns = patterns_for(M.move_item, SAMPLE_PARAMS[M.move_item])

    assert KeyPattern.for_query(QueryKind.file_properties, "/docs") in patterns
    assert KeyPattern.for_query(QueryKind.file_properties, "/docs/a.pdf", subtree=True) in patterns
    assert KeyPattern.for_query(QueryKind.file_properties, "/archive") in patterns
    assert len(patterns) == len(set(patterns))


def test_missing_param_widens_to_every_variant() -> None:
    patterns = patterns_for(M.delete_share, {"share_id": "12", "path": None})

    assert KeyPattern.for_query(QueryKind.shares_by_path) in patterns
    assert KeyPattern.for_query(QueryKind.share_detail, "12") in patterns


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", list(MutationKind), ids=lambda k: k.value)
async def test_commit_marks_exactly_the_dependents_stale(kind: MutationKind, store, coordinator) -> None:
    for key in POPULATED:
        store.write(key, {"marker": key.describe()})
    patterns = patterns_for(kind, coordinator.spec(kind).parse(SAMPLE_PARAMS[kind]).model_dump())

    outcome = await coordinator.mutate(kind, SAMPLE_PARAMS[kind])

    assert isinstance(outcome, Committed)
    expected = {k for k in POPULATED if any(p.matches(k) for p in patterns)}
    assert expected
    assert set(outcome.invalidated) == expected
    for key in POPULATED:
        assert store.state_of(key).invalidated is (key in expected), key.describe()


@pytest.mark.asyncio
async def test_deleting_a_group_refreshes_dependent_views(store, backend, coordinator) -> None:
    groups = CacheKey.build("groups.list")
    finance = CacheKey.build("groups.detail", "finance")
    legal = CacheKey.build("groups.detail", "legal")
    rooms = CacheKey.build("data-rooms.list")
    users = CacheKey.build("users.list")
    backend.reads[groups] = {"groups": [{"id": "finance"}, {"id": "legal"}], "total": 2}
    for key in (finance, legal, rooms, users):
        store.write(key, {"marker": key.describe()})

    seen: list[Any] = []
    sub = store.subscribe(groups, lambda view: seen.append(view.data))
    await sub.wait()
    backend.reads[groups] = {"groups": [{"id": "legal"}], "total": 1}

    outcome = await coordinator.mutate("groups.delete", {"group_id": "finance"})
    await store.settle()

    assert isinstance(outcome, Committed)
    # Optimistic removal first, then the refetched server truth.
    assert {"groups": [{"id": "legal"}], "total": 1} in seen
    assert sub.view.data == {"groups": [{"id": "legal"}], "total": 1}
    assert backend.fetch_count(groups) == 2
    for key in (finance, rooms, users):
        assert store.state_of(key).invalidated
    assert not store.state_of(legal).invalidated


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", list(MutationKind), ids=lambda k: k.value)
async def test_rollback_leaves_every_entry_as_it_was(kind: MutationKind, store, backend, coordinator) -> None:
    for key in POPULATED:
        store.write(key, {"marker": key.describe()})
    before = {key: store.state_of(key) for key in POPULATED}
    backend.writes[kind] = RemoteCallError(message="connection reset")

    outcome = await coordinator.mutate(kind, SAMPLE_PARAMS[kind])
    await store.settle()

    assert isinstance(outcome, RolledBack)
    for key in POPULATED:
        assert store.state_of(key) == before[key], key.describe()
        assert not store.state_of(key).invalidated, key.describe()


@pytest.mark.asyncio
async def test_creating_a_subadmin_user_refreshes_group_admin_views(store, coordinator) -> None:
    subadmins = CacheKey.build("groups.subadmins", "finance")
    carol_admin_of = CacheKey.build("users.subadmin-groups", "carol")
    carol_groups = CacheKey.build("users.groups", "carol")
    for key in (subadmins, carol_admin_of, carol_groups):
        store.write(key, {"marker": key.describe()})

    outcome = await coordinator.mutate(
        "users.create",
        {"user_id": "carol", "password": "s3cret-pass", "groups": ["finance"], "subadmin_groups": ["finance"]},
    )

    assert isinstance(outcome, Committed)
    for key in (subadmins, carol_admin_of, carol_groups):
        assert store.state_of(key).invalidated, key.describe()
