"""Tests for qtrack.reconcile: create-or-merge of webhook results."""

from __future__ import annotations

import threading

import pytest

from qtrack.exceptions import StoreError
from qtrack.models import TestCaseResult
from qtrack.reconcile import (
    CREATED,
    FAILED,
    NEW_RECORD_DESCRIPTION,
    UNCHANGED,
    UPDATED,
    KeyedLock,
    TestCaseReconciler,
)
from qtrack.store.datastore import InMemoryDataStore
from qtrack.store.events import TEST_CASE_COMMITTED, EventChannel


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def reconciler(store, events, clock):
    return TestCaseReconciler(store, events, clock=clock)


class TestCreate:
    """Results for unknown ids synthesize a new record."""

    def test_new_record_defaults(self, empty_store, clock):
        reconciler = TestCaseReconciler(empty_store, clock=clock)
        result = reconciler.reconcile(TestCaseResult(id="NEW-1", status="Passed", duration=120))

        assert result.outcome == CREATED
        record = empty_store.get_test_case("NEW-1")
        assert record.name == "Test case NEW-1"
        assert record.description == NEW_RECORD_DESCRIPTION
        assert record.automation_status == "Automated"
        assert record.priority == "Medium"
        assert record.status == "Passed"
        assert record.last_executed == clock()
        assert record.execution_time == 120
        assert record.requirement_ids == []
        assert record.tags == []
        assert record.version == ""
        assert record.assignee == ""

    def test_new_record_uses_supplied_name(self, reconciler, store):
        reconciler.reconcile(TestCaseResult(id="NEW-2", status="Failed", name="Checkout"))
        assert store.get_test_case("NEW-2").name == "Checkout"

    def test_new_record_without_status(self, reconciler, store):
        reconciler.reconcile(TestCaseResult(id="NEW-3"))
        record = store.get_test_case("NEW-3")
        assert record.status == "Unknown"
        assert record.last_executed == ""

    def test_skipped_result_does_not_stamp_last_executed(self, reconciler, store):
        reconciler.reconcile(TestCaseResult(id="NEW-4", status="Skipped"))
        assert store.get_test_case("NEW-4").last_executed == ""


class TestMerge:
    """Results for known ids merge execution fields only."""

    def test_status_change_updates(self, reconciler, store, clock):
        result = reconciler.reconcile(
            TestCaseResult(id="TC1", status="Failed", duration=80, logs="boom", file="t.py")
        )

        assert result.outcome == UPDATED
        assert result.previous_status == "Passed"
        record = store.get_test_case("TC1")
        assert record.status == "Failed"
        assert record.execution_time == 80
        assert record.logs == "boom"
        assert record.file == "t.py"
        assert record.last_executed == clock()

    def test_identity_fields_preserved(self, reconciler, store):
        before = store.get_test_case("TC1")
        reconciler.reconcile(TestCaseResult(id="TC1", status="Failed", name="Renamed"))
        after = store.get_test_case("TC1")

        assert after.name == before.name
        assert after.description == before.description
        assert after.priority == before.priority
        assert after.requirement_ids == before.requirement_ids
        assert after.tags == before.tags
        assert after.assignee == before.assignee
        assert after.automation_status == before.automation_status

    def test_missing_fields_keep_existing_values(self, reconciler, store):
        reconciler.reconcile(TestCaseResult(id="TC1", status="Failed", duration=80, logs="boom"))
        reconciler.reconcile(TestCaseResult(id="TC1", status="Passed"))

        record = store.get_test_case("TC1")
        assert record.status == "Passed"
        assert record.execution_time == 80
        assert record.logs == "boom"

    def test_not_run_keeps_last_executed(self, reconciler, store):
        reconciler.reconcile(TestCaseResult(id="TC1", status="Not Run"))
        record = store.get_test_case("TC1")
        assert record.status == "Not Run"
        assert record.last_executed == ""

    def test_same_status_is_unchanged_and_not_written(self, reconciler, store):
        writes = []
        store.subscribe(lambda: writes.append(1))

        result = reconciler.reconcile(TestCaseResult(id="TC1", status="Passed", logs="new"))

        assert result.outcome == UNCHANGED
        assert result.committed is False
        assert result.succeeded is True
        assert writes == []
        assert store.get_test_case("TC1").logs == ""

    def test_missing_status_keeps_existing(self, reconciler, store):
        result = reconciler.reconcile(TestCaseResult(id="TC2"))
        assert result.outcome == UNCHANGED
        assert store.get_test_case("TC2").status == "Failed"


class FailingStore(InMemoryDataStore):
    def save_test_case(self, test_case):
        raise StoreError("disk full")


class TestStoreFailure:
    def test_store_error_reports_failed(self, clock, caplog):
        store = FailingStore()
        reconciler = TestCaseReconciler(store, clock=clock)

        result = reconciler.reconcile(TestCaseResult(id="X", status="Passed"))

        assert result.outcome == FAILED
        assert result.record is None
        assert result.succeeded is False
        assert "Failed to save test case X" in caplog.text

    def test_store_error_publishes_nothing(self, events, clock):
        committed = []
        events.subscribe(TEST_CASE_COMMITTED, committed.append)
        reconciler = TestCaseReconciler(FailingStore(), events, clock=clock)

        reconciler.reconcile(TestCaseResult(id="X", status="Passed"))

        assert committed == []


class TestEvents:
    def test_commit_is_published(self, reconciler, events):
        committed = []
        events.subscribe(TEST_CASE_COMMITTED, committed.append)

        reconciler.reconcile(TestCaseResult(id="TC2", status="Passed"))

        assert len(committed) == 1
        assert committed[0].outcome == UPDATED
        assert committed[0].record.id == "TC2"

    def test_unchanged_is_not_published(self, reconciler, events):
        committed = []
        events.subscribe(TEST_CASE_COMMITTED, committed.append)

        reconciler.reconcile(TestCaseResult(id="TC2", status="Failed"))

        assert committed == []

    def test_failing_subscriber_does_not_fail_reconcile(self, reconciler, events, store):
        def broken(_):
            raise RuntimeError("subscriber bug")

        events.subscribe(TEST_CASE_COMMITTED, broken)
        result = reconciler.reconcile(TestCaseResult(id="TC2", status="Passed"))

        assert result.outcome == UPDATED
        assert store.get_test_case("TC2").status == "Passed"


class TestConcurrency:
    def test_same_id_deliveries_serialize(self, empty_store, clock):
        """Concurrent deliveries for one id create it exactly once."""
        reconciler = TestCaseReconciler(empty_store, clock=clock)
        outcomes = []
        barrier = threading.Barrier(8)

        def deliver(i):
            barrier.wait()
            status = "Passed" if i % 2 else "Failed"
            outcomes.append(reconciler.reconcile(TestCaseResult(id="SHARED", status=status)))

        threads = [threading.Thread(target=deliver, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [o.outcome for o in outcomes].count(CREATED) == 1
        assert all(o.succeeded for o in outcomes)
        assert empty_store.get_test_case("SHARED").status in ("Passed", "Failed")
        assert len(reconciler._locks) == 0

    def test_distinct_ids_all_created(self, empty_store, clock):
        reconciler = TestCaseReconciler(empty_store, clock=clock)
        threads = [
            threading.Thread(
                target=reconciler.reconcile,
                args=(TestCaseResult(id=f"TC-{i}", status="Passed"),),
            )
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(empty_store.get_test_cases()) == 20


class TestKeyedLock:
    def test_lock_released_after_use(self):
        locks = KeyedLock()
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_lock_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        with locks.hold("a"):
            pass
