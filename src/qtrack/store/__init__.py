"""
qtrack.store - Canonical data store contract and event channel.
"""

from qtrack.store.datastore import (
    DataStore,
    InMemoryDataStore,
    load_snapshot_file,
    write_snapshot_file,
)
from qtrack.store.events import TEST_CASE_COMMITTED, WEBHOOK_RECEIVED, EventChannel

__all__ = [
    "DataStore",
    "EventChannel",
    "InMemoryDataStore",
    "TEST_CASE_COMMITTED",
    "WEBHOOK_RECEIVED",
    "load_snapshot_file",
    "write_snapshot_file",
]
