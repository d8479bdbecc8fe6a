"""Topic-based event channel.

Components publish events instead of calling each other directly: the
reconciler announces committed test case updates, the webhook processor
announces received results, and interested parties subscribe. A failing
subscriber is logged and skipped; it never fails the publisher.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable

from loguru import logger

# Published by the reconciler after a test case write is committed
TEST_CASE_COMMITTED = "test_case.committed"
# Published by the webhook processor once a result has been handled
WEBHOOK_RECEIVED = "webhook.received"

Handler = Callable[[Any], None]


class EventChannel:
    """Synchronous publish/subscribe channel keyed by topic."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic``.

        Returns:
            A callable that removes the subscription.
        """
        with self._lock:
            self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._handlers.get(topic, []))

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver ``payload`` to every handler of ``topic``.

        Returns:
            Number of handlers that raised.
        """
        with self._lock:
            handlers = list(self._handlers.get(topic, []))

        failures = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                failures += 1
                logger.exception("Subscriber {!r} failed on topic {}", handler, topic)
        return failures
