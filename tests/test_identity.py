from __future__ import annotations

import pytest

from vdr_admin.auth.identity import IdentityStore
from vdr_admin.auth.models import Identity
from vdr_admin.errors import IdentityUnavailable


def test_require_without_identity_raises() -> None:
    store = IdentityStore()

    with pytest.raises(IdentityUnavailable):
        store.require()


def test_lifecycle_notifies_on_every_change(admin_identity: Identity, standard_identity: Identity) -> None:
    store = IdentityStore()
    seen: list[Identity | None] = []
    store.subscribe(seen.append)

    store.set(admin_identity)
    store.set(standard_identity)
    store.clear()

    assert seen == [admin_identity, standard_identity, None]
    assert store.current is None


def test_equal_snapshot_does_not_notify(admin_identity: Identity) -> None:
    store = IdentityStore(admin_identity)
    seen: list[Identity | None] = []
    store.subscribe(seen.append)

    store.set(Identity.build(id="root", display_name="Root", groups=("admin",)))

    assert seen == []
    assert store.require() is admin_identity


def test_unsubscribe_stops_notifications(admin_identity: Identity) -> None:
    store = IdentityStore()
    seen: list[Identity | None] = []
    unsubscribe = store.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    store.set(admin_identity)

    assert seen == []
