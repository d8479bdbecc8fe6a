"""
qtrack.reconcile - Merge incoming results into canonical test case records.

A webhook result either creates a new record or is merged into the
existing one. Merging only ever touches execution fields (status,
execution time, logs, file, last executed); identity and classification
fields always come from the stored record.

Each test case id is reconciled under its own lock, so concurrent
deliveries for one id run one after another while different ids proceed
in parallel. A write is committed only when it creates a record or changes
its status; a committed write is announced on the event channel.
"""

from __future__ import annotations

import dataclasses
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from loguru import logger

from qtrack.exceptions import StoreError
from qtrack.models import (
    AUTOMATED,
    EXECUTED_STATUSES,
    UNKNOWN,
    TestCaseRecord,
    TestCaseResult,
    utc_now_iso,
)
from qtrack.store.datastore import DataStore
from qtrack.store.events import TEST_CASE_COMMITTED, EventChannel

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
FAILED = "failed"

NEW_RECORD_DESCRIPTION = "Test case created from webhook result"


class KeyedLock:
    """One lock per key, created on demand and dropped when no longer held."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                current, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (current, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one result.

    Attributes:
        outcome: created, updated, unchanged or failed
        record: The resulting record (None when the store write failed)
        previous_status: Status before the merge, None for new records
    """

    outcome: str
    record: TestCaseRecord | None
    previous_status: str | None = None

    @property
    def committed(self) -> bool:
        return self.outcome in (CREATED, UPDATED)

    @property
    def succeeded(self) -> bool:
        return self.outcome != FAILED


class TestCaseReconciler:
    """Create-or-merge reconciliation against a :class:`DataStore`.

    Args:
        store: Canonical test case store.
        events: Channel receiving ``test_case.committed`` after each commit.
        clock: Returns the timestamp stamped into ``lastExecuted``.
    """

    __test__ = False

    def __init__(
        self,
        store: DataStore,
        events: EventChannel | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.store = store
        self.events = events or EventChannel()
        self.clock = clock
        self._locks = KeyedLock()

    def create_record(self, result: TestCaseResult) -> TestCaseRecord:
        """Synthesize a record for a test case the store has never seen."""
        status = result.status or UNKNOWN
        return TestCaseRecord(
            id=result.id,
            name=result.name or f"Test case {result.id}",
            description=NEW_RECORD_DESCRIPTION,
            status=status,
            automation_status=AUTOMATED,
            priority="Medium",
            last_executed=self.clock() if status in EXECUTED_STATUSES else "",
            execution_time=result.duration or 0,
            logs=result.logs or "",
            requirement_ids=[],
            version="",
            tags=[],
            assignee="",
            file=result.file or "",
        )

    def merge_record(self, existing: TestCaseRecord, result: TestCaseResult) -> TestCaseRecord:
        """Merge execution fields of ``result`` into a copy of ``existing``."""
        status = result.status or existing.status
        executed = result.status in EXECUTED_STATUSES
        return dataclasses.replace(
            existing,
            status=status,
            last_executed=self.clock() if executed else existing.last_executed,
            execution_time=result.duration or existing.execution_time or 0,
            logs=result.logs or existing.logs or "",
            file=result.file or existing.file,
        )

    def reconcile(self, result: TestCaseResult) -> ReconcileResult:
        """Create or update the record for ``result.id``.

        Returns:
            The outcome. ``failed`` means the store rejected the write; the
            caller should report it but carry on.
        """
        with self._locks.hold(result.id):
            existing = self.store.get_test_case(result.id)

            if existing is None:
                record = self.create_record(result)
                outcome, previous = CREATED, None
            else:
                record = self.merge_record(existing, result)
                previous = existing.status
                if previous == record.status:
                    logger.debug("Test case {} status unchanged: {}", result.id, previous)
                    return ReconcileResult(UNCHANGED, record, previous)
                outcome = UPDATED

            try:
                record = self.store.save_test_case(record)
            except StoreError:
                logger.exception("Failed to save test case {}", result.id)
                return ReconcileResult(FAILED, None, previous)

        if outcome == CREATED:
            logger.info("Created test case {} with status {}", record.id, record.status)
        else:
            logger.info("Updated test case {}: {} -> {}", record.id, previous, record.status)

        reconciled = ReconcileResult(outcome, record, previous)
        self.events.publish(TEST_CASE_COMMITTED, reconciled)
        return reconciled
