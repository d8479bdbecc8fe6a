"""Per-request storage of webhook results.

Results are kept in a two-level mapping, request id first and test case
id second. A later result for the same pair replaces the earlier one but
keeps its position, so per-request listings stay in first-arrival order.
"""

from __future__ import annotations

import copy
import threading
from typing import Protocol, runtime_checkable

from qtrack.models import TestCaseResult, WebhookEnvelope, utc_now_iso


def storage_key(request_id: str, test_case_id: str) -> str:
    return f"{request_id}-{test_case_id}"


@runtime_checkable
class WebhookResultStore(Protocol):
    """Repository for results received per webhook request."""

    def store(self, envelope: WebhookEnvelope) -> str: ...

    def get_results_for_request(self, request_id: str) -> list[TestCaseResult]: ...

    def clear(self) -> None: ...


class InMemoryWebhookResultStore:
    """Process-local result store; create one per app and clear it in tests."""

    def __init__(self, clock=utc_now_iso) -> None:
        self._results: dict[str, dict[str, TestCaseResult]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def store(self, envelope: WebhookEnvelope) -> str:
        """Store the single result of ``envelope``.

        Returns:
            The composite storage key ``"{requestId}-{testCaseId}"``.
        """
        result = copy.deepcopy(envelope.results[0])
        result.request_id = envelope.request_id
        result.received_at = self._clock()

        with self._lock:
            self._results.setdefault(envelope.request_id, {})[result.id] = result
        return storage_key(envelope.request_id, result.id)

    def get_results_for_request(self, request_id: str) -> list[TestCaseResult]:
        with self._lock:
            return copy.deepcopy(list(self._results.get(request_id, {}).values()))

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._results.values())
