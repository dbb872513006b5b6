"""
PDCA Action Tracker
Tests for the live collections: loading/ready state, key changes, stale callbacks.

Uses an in-memory store double whose snapshots are pushed by hand so that
the LOADING window between subscribe and first snapshot can be observed.
"""

import pytest

from pdca.services.entity_store import store
from pdca.services.reconciliation import LiveCollection, LoadState, StreamPhase


class FakeStore:
    """Records subscriptions; tests push snapshots/errors explicitly."""

    def __init__(self):
        self.subs = []

    def subscribe(self, kind, key, on_snapshot, on_error):
        entry = {"kind": kind, "key": key, "snap": on_snapshot, "err": on_error, "active": True}
        self.subs.append(entry)

        def unsubscribe():
            entry["active"] = False

        return unsubscribe

    def active(self):
        return [s for s in self.subs if s["active"]]

    def push(self, items, index=-1):
        self.subs[index]["snap"](items)

    def fail(self, exc, index=-1):
        self.subs[index]["err"](exc)


@pytest.fixture()
def fake():
    return FakeStore()


class TestInitialLoad:
    def test_loading_until_first_snapshot(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        assert col.loading
        assert col.items == []
        assert col.phase is StreamPhase.AWAITING_FIRST

    def test_empty_first_snapshot_is_ready(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([])
        assert col.ready
        assert col.items == []
        assert col.phase is StreamPhase.STREAMING

    def test_items_replaced_in_store_order(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([{"id": "b"}, {"id": "a"}])
        assert [i["id"] for i in col.items] == ["b", "a"]
        fake.push([{"id": "c"}])
        assert [i["id"] for i in col.items] == ["c"]

    def test_later_snapshots_never_return_to_loading(self, fake):
        states = []
        col = LiveCollection(fake, "actions", "p1", on_change=lambda c: states.append(c.state))
        fake.push([{"id": "a"}])
        fake.push([{"id": "a"}, {"id": "b"}])
        fake.push([])
        assert col.ready
        assert states[0] is LoadState.LOADING
        assert states.count(LoadState.LOADING) == 1
        assert all(s is LoadState.READY for s in states[1:])

    def test_first_for_single_document(self, fake):
        col = LiveCollection(fake, "project", "p1")
        assert col.first is None
        fake.push([{"id": "p1", "title": "T"}])
        assert col.first["title"] == "T"

    def test_unscoped_subscribes_with_none_key(self, fake):
        col = LiveCollection(fake, "statuses", scoped=False)
        assert col.loading
        assert fake.subs[0]["key"] is None


class TestKeyChanges:
    def test_none_key_is_ready_and_empty(self, fake):
        col = LiveCollection(fake, "actions", None)
        assert col.ready
        assert col.items == []
        assert col.handle is None
        assert fake.subs == []

    def test_set_key_reenters_loading(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([{"id": "a"}])
        col.set_key("p2")
        assert col.loading
        assert fake.subs[0]["active"] is False
        assert len(fake.active()) == 1
        fake.push([{"id": "x"}])
        assert col.ready
        assert col.items == [{"id": "x"}]

    def test_set_key_to_none_clears(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([{"id": "a"}])
        col.set_key(None)
        assert col.ready
        assert col.items == []
        assert fake.active() == []

    def test_same_key_keeps_subscription(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([{"id": "a"}])
        col.set_key("p1")
        assert len(fake.subs) == 1
        assert col.ready

    def test_old_handle_snapshot_ignored(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.set_key("p2")
        fake.push([{"id": "stale"}], index=0)
        assert col.loading
        assert col.items == []

    def test_phase_is_per_subscription(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.push([])
        first_handle = col.handle
        col.set_key("p2")
        assert first_handle.phase is StreamPhase.STREAMING
        assert col.phase is StreamPhase.AWAITING_FIRST


class TestTeardown:
    def test_close_unsubscribes(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.close()
        assert col.state is LoadState.UNSUBSCRIBED
        assert fake.active() == []

    def test_close_is_idempotent(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.close()
        col.close()
        assert col.state is LoadState.UNSUBSCRIBED

    def test_callback_after_close_is_noop(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.close()
        fake.push([{"id": "late"}])
        assert col.items == []
        assert col.state is LoadState.UNSUBSCRIBED

    def test_set_key_after_close_raises(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.close()
        with pytest.raises(RuntimeError):
            col.set_key("p2")

    def test_context_manager_closes(self, fake):
        with LiveCollection(fake, "actions", "p1") as col:
            fake.push([])
            assert col.ready
        assert col.closed
        assert fake.active() == []


class TestErrors:
    def test_error_moves_to_failed(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.fail(RuntimeError("boom"))
        assert col.state is LoadState.FAILED
        assert str(col.error) == "boom"
        assert fake.active() == []

    def test_failed_survives_close(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        fake.fail(RuntimeError("boom"))
        col.close()
        assert col.state is LoadState.FAILED

    def test_error_on_superseded_handle_ignored(self, fake):
        col = LiveCollection(fake, "actions", "p1")
        col.set_key("p2")
        fake.fail(RuntimeError("old"), index=0)
        assert col.loading
        assert col.error is None


class TestAgainstEntityStore:
    """The real store delivers the first snapshot synchronously on subscribe."""

    def test_ready_immediately(self, project):
        with LiveCollection(store, "actions", project["id"]) as col:
            assert col.ready
            assert col.items == []

    def test_write_pushes_new_snapshot(self, client, user_headers, project):
        changes = []
        col = LiveCollection(store, "actions", project["id"], on_change=lambda c: changes.append(len(c.items)))
        res = client.post(f"/api/v1/projects/{project['id']}/actions",
                          json={"action": "Calibrate gauge"}, headers=user_headers)
        assert res.status_code == 201
        assert [a["action"] for a in col.items] == ["Calibrate gauge"]
        assert changes[-1] == 1
        col.close()
