"""Data store contract and in-memory implementation.

The canonical requirement / test case / mapping / release collections are
owned by a store. The reconciliation core only talks to it through the
narrow :class:`DataStore` protocol. :class:`InMemoryDataStore` implements
it for the server, the CLI and tests; a database-backed store would
implement the same methods.

Every mutating call notifies subscribers after the change is visible.
"""

from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from loguru import logger

from qtrack.exceptions import StoreError
from qtrack.models import Requirement, TestCaseRecord, Version

Listener = Callable[[], None]


@runtime_checkable
class DataStore(Protocol):
    """Read/write contract the reconciliation and metrics code relies on."""

    def get_test_cases(self) -> list[TestCaseRecord]: ...

    def get_test_case(self, test_case_id: str) -> TestCaseRecord | None: ...

    def set_test_cases(self, test_cases: list[TestCaseRecord]) -> None: ...

    def save_test_case(self, test_case: TestCaseRecord) -> TestCaseRecord:
        """Insert or replace one record atomically."""
        ...

    def get_requirements(self) -> list[Requirement]: ...

    def get_mapping(self) -> dict[str, list[str]]: ...

    def get_versions(self) -> list[Version]: ...

    def set_versions(self, versions: list[Version]) -> None: ...

    def subscribe(self, listener: Listener) -> Callable[[], None]: ...


class InMemoryDataStore:
    """Thread-safe in-process store.

    Reads return deep copies so callers can never mutate stored state
    outside of the write methods. Writes replace whole records under a
    single lock, so a record is either fully written or untouched.
    """

    def __init__(
        self,
        requirements: Iterable[Requirement] = (),
        test_cases: Iterable[TestCaseRecord] = (),
        mapping: dict[str, list[str]] | None = None,
        versions: Iterable[Version] = (),
    ) -> None:
        self._lock = threading.RLock()
        self._requirements = list(requirements)
        self._test_cases: dict[str, TestCaseRecord] = {}
        for tc in test_cases:
            self._test_cases[tc.id] = tc
        self._mapping = {k: list(v) for k, v in (mapping or {}).items()}
        self._versions = list(versions)
        self._listeners: list[Listener] = []

    # -- test cases ---------------------------------------------------------

    def get_test_cases(self) -> list[TestCaseRecord]:
        with self._lock:
            return copy.deepcopy(list(self._test_cases.values()))

    def get_test_case(self, test_case_id: str) -> TestCaseRecord | None:
        with self._lock:
            record = self._test_cases.get(test_case_id)
            return copy.deepcopy(record) if record is not None else None

    def set_test_cases(self, test_cases: list[TestCaseRecord]) -> None:
        if not isinstance(test_cases, list):
            raise StoreError(
                "Test cases must be a list", context={"type": type(test_cases).__name__}
            )
        with self._lock:
            self._test_cases = {tc.id: copy.deepcopy(tc) for tc in test_cases}
        logger.debug("Replaced test case collection ({} records)", len(test_cases))
        self._notify_listeners()

    def save_test_case(self, test_case: TestCaseRecord) -> TestCaseRecord:
        if not test_case.id:
            raise StoreError("Test case id is required")
        with self._lock:
            self._test_cases[test_case.id] = copy.deepcopy(test_case)
        logger.debug("Saved test case {} ({})", test_case.id, test_case.status)
        self._notify_listeners()
        return copy.deepcopy(test_case)

    # -- requirements, mapping, versions -----------------------------------

    def get_requirements(self) -> list[Requirement]:
        with self._lock:
            return copy.deepcopy(self._requirements)

    def set_requirements(self, requirements: list[Requirement]) -> None:
        with self._lock:
            self._requirements = copy.deepcopy(requirements)
        self._notify_listeners()

    def get_mapping(self) -> dict[str, list[str]]:
        with self._lock:
            return {k: list(v) for k, v in self._mapping.items()}

    def update_mappings(self, new_mappings: dict[str, list[str]]) -> None:
        with self._lock:
            self._mapping.update({k: list(v) for k, v in new_mappings.items()})
        self._notify_listeners()

    def get_versions(self) -> list[Version]:
        with self._lock:
            return copy.deepcopy(self._versions)

    def get_version(self, version_id: str) -> Version | None:
        with self._lock:
            for version in self._versions:
                if version.id == version_id:
                    return copy.deepcopy(version)
        return None

    def set_versions(self, versions: list[Version]) -> None:
        if not isinstance(versions, list):
            raise StoreError("Versions must be a list", context={"type": type(versions).__name__})
        with self._lock:
            self._versions = copy.deepcopy(versions)
        self._notify_listeners()

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Data store listener {!r} failed", listener)

    def reset(self) -> None:
        """Drop all data (listeners are kept)."""
        with self._lock:
            self._requirements = []
            self._test_cases = {}
            self._mapping = {}
            self._versions = []
        self._notify_listeners()

    # -- snapshots ----------------------------------------------------------

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> InMemoryDataStore:
        """Build a store from the camelCase snapshot shape.

        The snapshot holds ``requirements``, ``testCases``, ``mapping`` and
        ``versions``; all keys are optional.
        """
        return cls(
            requirements=[Requirement.from_dict(r) for r in data.get("requirements", [])],
            test_cases=[TestCaseRecord.from_dict(t) for t in data.get("testCases", [])],
            mapping=data.get("mapping") or {},
            versions=[Version.from_dict(v) for v in data.get("versions", [])],
        )

    def to_snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "requirements": [r.to_dict() for r in self._requirements],
                "testCases": [t.to_dict() for t in self._test_cases.values()],
                "mapping": {k: list(v) for k, v in self._mapping.items()},
                "versions": [v.to_dict() for v in self._versions],
            }


def load_snapshot_file(path: Path) -> InMemoryDataStore:
    """Load a JSON snapshot file into a new in-memory store.

    Raises:
        StoreError: If the file is missing or not valid JSON.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise StoreError(f"Snapshot not found: {path}", context={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise StoreError(f"Snapshot is not valid JSON: {e}", context={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise StoreError("Snapshot must be a JSON object", context={"path": str(path)})
    return InMemoryDataStore.from_snapshot(data)


def write_snapshot_file(store: InMemoryDataStore, path: Path) -> None:
    """Write the store's snapshot to ``path`` as indented JSON."""
    Path(path).write_text(json.dumps(store.to_snapshot(), indent=2) + "\n", encoding="utf-8")
