"""
Tests for live-query reconciliation.
"""

import asyncio

import pytest

from conftest import OWNER, StubRemote, task_payload
from lifesync.config import SyncSettings
from lifesync.errors import SubscriptionError
from lifesync.models.audit import AuditEventType
from lifesync.models.entities import RecordKind, Task
from lifesync.services.remote import InMemoryRemoteService
from lifesync.store import RecordStore
from lifesync.sync import SubscriptionReconciler, SubscriptionStatus


def seed_tasks(backend, *titles):
    return [backend.insert(RecordKind.TASK, OWNER, {"title": title}) for title in titles]


class TestSubscribe:
    """Tests for establishing live queries."""

    @pytest.mark.asyncio
    async def test_initial_snapshot_populates_store(self, backend, reconciler, store):
        """Test that the first push fills the store."""
        seed_tasks(backend, "Buy milk", "Call mom")

        handle = await reconciler.subscribe(RecordKind.TASK)

        assert handle.status == SubscriptionStatus.LIVE
        assert handle.push_count == 1
        assert handle.is_synced
        assert [t.title for t in store.snapshot(RecordKind.TASK)] == ["Buy milk", "Call mom"]

    @pytest.mark.asyncio
    async def test_subscribe_twice_returns_same_handle(self, reconciler, remote):
        """Test at most one live query per kind."""
        first = await reconciler.subscribe("Task")
        second = await reconciler.subscribe(RecordKind.TASK)
        assert first is second
        assert remote.live_query_count(RecordKind.TASK) == 1

    @pytest.mark.asyncio
    async def test_establishment_failure_raises(self, reconciler, remote, store, audit_events):
        """Test that a rejected live query surfaces as SubscriptionError."""
        remote.fail_next("subscribe")

        with pytest.raises(SubscriptionError):
            await reconciler.subscribe(RecordKind.TASK)

        assert reconciler.handle(RecordKind.TASK).status == SubscriptionStatus.FAILED
        assert store.snapshot(RecordKind.TASK) == ()
        assert audit_events[-1].event_type == AuditEventType.SUBSCRIPTION_FAILED

    @pytest.mark.asyncio
    async def test_establishment_is_retried(self, remote, store, audit_logger):
        """Test that establishment retries up to the configured attempts."""
        settings = SyncSettings(
            _env_file=None,
            subscribe_retry_attempts=2,
            subscribe_retry_min_wait_seconds=0,
            subscribe_retry_max_wait_seconds=0,
        )
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        remote.fail_next("subscribe")

        handle = await reconciler.subscribe(RecordKind.TASK)
        assert handle.status == SubscriptionStatus.LIVE

    @pytest.mark.asyncio
    async def test_resubscribe_after_failure(self, reconciler, remote):
        """Test that a failed kind can be subscribed again."""
        remote.fail_next("subscribe")
        with pytest.raises(SubscriptionError):
            await reconciler.subscribe(RecordKind.TASK)

        handle = await reconciler.subscribe(RecordKind.TASK)
        assert handle.status == SubscriptionStatus.LIVE

    @pytest.mark.asyncio
    async def test_stop_while_establishing(self, store, audit_logger, settings):
        """Test that a query released mid-establishment never writes."""
        gate = asyncio.Event()
        remote = StubRemote(gate)
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)

        pending = asyncio.create_task(reconciler.subscribe(RecordKind.TASK))
        for _ in range(100):
            query = remote.queries.get(RecordKind.TASK)
            if query is not None and query.start_calls:
                break
            await asyncio.sleep(0)
        reconciler.handle(RecordKind.TASK).stop()
        gate.set()
        handle = await pending

        assert handle.status == SubscriptionStatus.STOPPED
        assert remote.queries[RecordKind.TASK].stop_calls >= 1

        remote.queries[RecordKind.TASK].push([task_payload("t1")])
        assert store.snapshot(RecordKind.TASK) == ()

    @pytest.mark.asyncio
    async def test_concurrent_subscribe_waits_for_establishment(self, store, audit_logger, settings):
        """Test that a second caller does not get a handle that is still pending."""
        gate = asyncio.Event()
        remote = StubRemote(gate)
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)

        first = asyncio.create_task(reconciler.subscribe(RecordKind.TASK))
        second = asyncio.create_task(reconciler.subscribe(RecordKind.TASK))
        for _ in range(10):
            await asyncio.sleep(0)
        assert not first.done()
        assert not second.done()

        gate.set()
        handles = await asyncio.gather(first, second)

        assert handles[0] is handles[1]
        assert handles[0].status == SubscriptionStatus.LIVE
        assert remote.queries[RecordKind.TASK].start_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_subscribe_shares_failure(self, backend, auth, store, audit_logger, settings):
        """Test that every caller waiting on a failed establishment sees the error."""
        remote = InMemoryRemoteService(backend, auth, latency_seconds=0.01)
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        remote.fail_next("subscribe")

        results = await asyncio.gather(
            reconciler.subscribe(RecordKind.TASK),
            reconciler.subscribe(RecordKind.TASK),
            return_exceptions=True,
        )

        assert all(isinstance(result, SubscriptionError) for result in results)
        assert reconciler.handle(RecordKind.TASK).status == SubscriptionStatus.FAILED


class TestPushes:
    """Tests for applying pushes."""

    @pytest.mark.asyncio
    async def test_push_replaces_cached_set(self, store, audit_logger, settings):
        """Test that after a push the store holds exactly the pushed ids."""
        remote = StubRemote()
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        await reconciler.subscribe(RecordKind.TASK)
        query = remote.queries[RecordKind.TASK]

        query.push([task_payload("a"), task_payload("b"), task_payload("c")])
        query.push([task_payload("c"), task_payload("d")])

        assert store.ids(RecordKind.TASK) == ["c", "d"]

    @pytest.mark.asyncio
    async def test_remote_delete_removes_ghost(self, backend, reconciler, store):
        """Test that a record deleted elsewhere disappears locally."""
        rows = seed_tasks(backend, "a", "b")
        await reconciler.subscribe(RecordKind.TASK)

        backend.remove(RecordKind.TASK, OWNER, rows[0]["id"])

        assert store.ids(RecordKind.TASK) == [rows[1]["id"]]

    @pytest.mark.asyncio
    async def test_push_overwrites_provisional_copy(self, backend, reconciler, store):
        """Test that the authoritative push wins over a provisional write."""
        row = seed_tasks(backend, "Server title")[0]
        await reconciler.subscribe(RecordKind.TASK)

        local = store.get(RecordKind.TASK, row["id"]).model_copy(update={"title": "Local title"})
        store.upsert(RecordKind.TASK, local, provisional=True)

        backend.patch(RecordKind.TASK, OWNER, row["id"], {"priority": "HIGH"})

        record = store.get(RecordKind.TASK, row["id"])
        assert record.title == "Server title"
        assert not store.is_provisional(RecordKind.TASK, row["id"])
        assert len(store.snapshot(RecordKind.TASK)) == 1

    @pytest.mark.asyncio
    async def test_provisional_record_absent_from_push_is_dropped(self, backend, reconciler, store):
        """Test that a provisional record the service does not know is removed."""
        seed_tasks(backend, "a")
        await reconciler.subscribe(RecordKind.TASK)
        store.upsert(RecordKind.TASK, Task(id="local-only", title="x"), provisional=True)

        seed_tasks(backend, "b")

        assert "local-only" not in store.ids(RecordKind.TASK)

    @pytest.mark.asyncio
    async def test_records_outside_client_rules_still_sync(self, backend, reconciler, store):
        """Test that rows this client would not write keep the stream live."""
        budgets = await reconciler.subscribe(RecordKind.BUDGET)
        tasks = await reconciler.subscribe(RecordKind.TASK)

        backend.insert(
            RecordKind.BUDGET, OWNER,
            {"category": "Food", "monthlyLimit": 300, "month": "March 2024"},
        )
        backend.insert(RecordKind.TASK, OWNER, {"title": ""})

        assert budgets.status == SubscriptionStatus.LIVE
        assert tasks.status == SubscriptionStatus.LIVE
        assert store.snapshot(RecordKind.BUDGET)[0].month == "March 2024"
        assert store.snapshot(RecordKind.TASK)[0].title == ""

    @pytest.mark.asyncio
    async def test_unsynced_push_is_applied(self, reconciler, remote, store):
        """Test that locally-cached pushes are applied and flagged."""
        handle = await reconciler.subscribe(RecordKind.TASK)
        remote.emit(RecordKind.TASK, [task_payload("t1")], is_synced=False)

        assert store.ids(RecordKind.TASK) == ["t1"]
        assert not handle.is_synced

    @pytest.mark.asyncio
    async def test_pushes_per_kind_are_independent(self, backend, reconciler, store):
        """Test that each kind is reconciled on its own."""
        await reconciler.subscribe(RecordKind.TASK)
        await reconciler.subscribe(RecordKind.NOTE)

        backend.insert(RecordKind.NOTE, OWNER, {"content": "hello"})

        assert store.snapshot(RecordKind.TASK) == ()
        assert len(store.snapshot(RecordKind.NOTE)) == 1

    @pytest.mark.asyncio
    async def test_other_owners_rows_never_arrive(self, backend, reconciler, store):
        """Test owner scoping of pushes."""
        await reconciler.subscribe(RecordKind.TASK)
        backend.insert(RecordKind.TASK, "bob", {"title": "Bob's task"})
        assert store.snapshot(RecordKind.TASK) == ()


class TestUnsubscribe:
    """Tests for releasing live queries."""

    @pytest.mark.asyncio
    async def test_no_push_after_unsubscribe(self, store, audit_logger, settings):
        """Test that a late push from a stopped query is ignored."""
        remote = StubRemote()
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        await reconciler.subscribe(RecordKind.TASK)
        query = remote.queries[RecordKind.TASK]

        query.push([task_payload("a"), task_payload("b")])
        reconciler.unsubscribe(RecordKind.TASK)
        query.push([task_payload("a"), task_payload("b"), task_payload("c")])

        assert store.ids(RecordKind.TASK) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, store, audit_logger, settings):
        """Test that releasing twice stops the remote query once."""
        remote = StubRemote()
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        handle = await reconciler.subscribe(RecordKind.TASK)

        handle.stop()
        handle.stop()
        reconciler.unsubscribe(RecordKind.TASK)

        assert remote.queries[RecordKind.TASK].stop_calls == 1
        assert handle.status == SubscriptionStatus.STOPPED
        assert reconciler.handle(RecordKind.TASK) is None

    @pytest.mark.asyncio
    async def test_unsubscribe_keeps_cached_records(self, backend, reconciler, store, remote):
        """Test that releasing a query leaves the last snapshot readable."""
        seed_tasks(backend, "a", "b")
        await reconciler.subscribe(RecordKind.TASK)
        reconciler.unsubscribe(RecordKind.TASK)

        seed_tasks(backend, "c")

        assert len(store.snapshot(RecordKind.TASK)) == 2
        assert remote.live_query_count() == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, reconciler, remote):
        """Test releasing every live query."""
        await reconciler.subscribe(RecordKind.TASK)
        await reconciler.subscribe(RecordKind.EXPENSE)

        released = reconciler.unsubscribe_all()

        assert set(released) == {RecordKind.TASK, RecordKind.EXPENSE}
        assert reconciler.live_kinds == []
        assert remote.live_query_count() == 0

    @pytest.mark.asyncio
    async def test_push_after_store_closed_is_ignored(self, store, audit_logger, settings):
        """Test that a push racing teardown does not raise."""
        remote = StubRemote()
        reconciler = SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)
        handle = await reconciler.subscribe(RecordKind.TASK)

        store.close()
        remote.queries[RecordKind.TASK].push([task_payload("a")])

        assert handle.push_count == 0
        assert store.snapshot(RecordKind.TASK) == ()


class TestStreamFailures:
    """Tests for degraded live queries."""

    @pytest.mark.asyncio
    async def test_dropped_stream_keeps_last_known_good(self, backend, reconciler, remote, store):
        """Test that a stream error leaves the cache and marks the handle failed."""
        seed_tasks(backend, "a", "b")
        errors = []
        handle = await reconciler.subscribe(RecordKind.TASK, on_error=errors.append)

        remote.drop_stream(RecordKind.TASK)
        seed_tasks(backend, "c")

        assert handle.status == SubscriptionStatus.FAILED
        assert handle.degraded
        assert isinstance(handle.last_error, SubscriptionError)
        assert errors == [handle.last_error]
        assert len(store.snapshot(RecordKind.TASK)) == 2

    @pytest.mark.asyncio
    async def test_undecodable_push_marks_failed(self, backend, reconciler, remote, store):
        """Test that a malformed snapshot is not applied."""
        seed_tasks(backend, "a")
        handle = await reconciler.subscribe(RecordKind.TASK)

        remote.emit(RecordKind.TASK, [{"id": "broken"}])

        assert handle.status == SubscriptionStatus.FAILED
        assert "undecodable" in str(handle.last_error)
        assert [t.title for t in store.snapshot(RecordKind.TASK)] == ["a"]

    @pytest.mark.asyncio
    async def test_failing_error_handler_is_contained(self, reconciler, remote):
        """Test that a raising on_error callback does not escape."""
        def broken(error):
            raise RuntimeError("handler bug")

        handle = await reconciler.subscribe(RecordKind.TASK, on_error=broken)
        remote.drop_stream(RecordKind.TASK)
        assert handle.status == SubscriptionStatus.FAILED

    @pytest.mark.asyncio
    async def test_failed_kind_can_resubscribe(self, backend, reconciler, remote, store):
        """Test recovery from a dropped stream."""
        await reconciler.subscribe(RecordKind.TASK)
        remote.drop_stream(RecordKind.TASK)
        seed_tasks(backend, "while offline")

        handle = await reconciler.subscribe(RecordKind.TASK)

        assert handle.status == SubscriptionStatus.LIVE
        assert [t.title for t in store.snapshot(RecordKind.TASK)] == ["while offline"]

    @pytest.mark.asyncio
    async def test_audit_trail(self, reconciler, audit_events):
        """Test that start, snapshot and stop are audited."""
        await reconciler.subscribe(RecordKind.TASK)
        reconciler.unsubscribe(RecordKind.TASK)

        assert [e.event_type for e in audit_events] == [
            AuditEventType.SNAPSHOT_APPLIED,
            AuditEventType.SUBSCRIPTION_STARTED,
            AuditEventType.SUBSCRIPTION_STOPPED,
        ]
