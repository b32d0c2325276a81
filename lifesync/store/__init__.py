"""In-memory record cache."""

from lifesync.store.record_store import Listener, RecordStore, Snapshot, Subscription

__all__ = ["Listener", "RecordStore", "Snapshot", "Subscription"]
