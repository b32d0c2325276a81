"""
Record Store

Per-kind in-memory cache of records keyed by identifier, with
synchronous full-snapshot change notifications.

GUARANTEES:
- Every operation is total: the store never raises to its caller
- Every mutating call notifies all listeners of that kind, synchronously,
  with the complete current snapshot (never a delta)
- Insertion order is preserved; replacing a record keeps its position
- After close(), writes are no-ops and reads return empty snapshots

Provisional records (optimistic local writes) are tagged per id. Any
authoritative write of the same id clears the tag; a full-snapshot
replacement drops provisional records the snapshot does not contain.
"""

from collections import OrderedDict
from typing import Callable, Iterable, Optional

import structlog

from lifesync.models.entities import KindLike, RecordKind, SyncRecord, resolve_kind


Snapshot = tuple[SyncRecord, ...]
Listener = Callable[[Snapshot], None]


class Subscription:
    """Unsubscribe handle returned by RecordStore.subscribe. Safe to call twice."""

    def __init__(self, release: Callable[[], None]):
        self._release: Optional[Callable[[], None]] = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    __call__ = unsubscribe


class RecordStore:
    """
    In-memory cache for every record kind of one signed-in owner.

    The only writers are the subscription reconciler and the optimistic
    paths of the mutation coordinator; everything else reads.
    """

    def __init__(self):
        self._records: dict[RecordKind, OrderedDict[str, SyncRecord]] = {}
        self._provisional: dict[RecordKind, set[str]] = {}
        self._listeners: dict[RecordKind, list[Listener]] = {}
        self._generations: dict[RecordKind, int] = {}
        self._closed = False
        self._logger = structlog.get_logger("lifesync.store")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self, kind: KindLike) -> Snapshot:
        """Ordered, immutable view of every cached record of a kind."""
        records = self._records.get(resolve_kind(kind))
        return tuple(records.values()) if records else ()

    def get(self, kind: KindLike, record_id: str) -> Optional[SyncRecord]:
        records = self._records.get(resolve_kind(kind))
        return records.get(record_id) if records else None

    def ids(self, kind: KindLike) -> list[str]:
        records = self._records.get(resolve_kind(kind))
        return list(records) if records else []

    def is_provisional(self, kind: KindLike, record_id: str) -> bool:
        return record_id in self._provisional.get(resolve_kind(kind), ())

    def generation(self, kind: KindLike) -> int:
        """Number of full-snapshot replacements and clears applied to a kind so far."""
        return self._generations.get(resolve_kind(kind), 0)

    def kinds(self) -> list[RecordKind]:
        """Kinds that currently hold at least one record."""
        return [kind for kind, records in self._records.items() if records]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, kind: KindLike, record: SyncRecord, provisional: bool = False) -> None:
        """Insert a record, or replace the one with the same id in place."""
        record_kind = resolve_kind(kind)
        if self._ignore_write("upsert", record_kind):
            return

        records = self._records.setdefault(record_kind, OrderedDict())
        records[record.id] = record
        self._tag(record_kind, record.id, provisional)
        self._notify(record_kind)

    def remove(self, kind: KindLike, record_id: str) -> None:
        """Delete by id. Removing an absent id changes nothing."""
        record_kind = resolve_kind(kind)
        if self._ignore_write("remove", record_kind):
            return

        records = self._records.get(record_kind)
        if records is not None:
            records.pop(record_id, None)
        self._provisional.get(record_kind, set()).discard(record_id)
        self._notify(record_kind)

    def replace_all(self, kind: KindLike, records: Iterable[SyncRecord]) -> int:
        """
        Make the kind's contents exactly `records`, in the given order.

        Emits one notification. Returns how many previously cached
        records were dropped.
        """
        record_kind = resolve_kind(kind)
        if self._ignore_write("replace_all", record_kind):
            return 0

        previous = self._records.get(record_kind, OrderedDict())
        fresh = OrderedDict((record.id, record) for record in records)
        removed = sum(1 for record_id in previous if record_id not in fresh)

        self._records[record_kind] = fresh
        self._provisional[record_kind] = set()
        self._generations[record_kind] = self._generations.get(record_kind, 0) + 1
        self._notify(record_kind)
        return removed

    def clear(self, kind: Optional[KindLike] = None) -> None:
        """
        Drop cached records of one kind, or of every kind.

        Counts as a replacement: pending rollbacks of earlier optimistic
        writes no longer apply.
        """
        if self._closed:
            return
        targets = [resolve_kind(kind)] if kind is not None else list(self._records)
        for record_kind in targets:
            self._records.pop(record_kind, None)
            self._provisional.pop(record_kind, None)
            self._generations[record_kind] = self._generations.get(record_kind, 0) + 1
            self._notify(record_kind)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, kind: KindLike, listener: Listener) -> Subscription:
        """
        Register a listener for one kind.

        The listener receives the full snapshot after every change.
        """
        record_kind = resolve_kind(kind)
        if self._closed:
            return Subscription(lambda: None)

        listeners = self._listeners.setdefault(record_kind, [])
        listeners.append(listener)

        def release() -> None:
            current = self._listeners.get(record_kind, [])
            if listener in current:
                current.remove(listener)

        return Subscription(release)

    def listener_count(self, kind: KindLike) -> int:
        return len(self._listeners.get(resolve_kind(kind), []))

    def close(self) -> None:
        """Logical teardown (e.g. sign-out). Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._records.clear()
        self._provisional.clear()
        self._listeners.clear()
        self._logger.info("record_store_closed")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ignore_write(self, operation: str, kind: RecordKind) -> bool:
        if self._closed:
            self._logger.debug(
                "write_after_close_ignored",
                operation=operation,
                record_kind=kind.value,
            )
            return True
        return False

    def _tag(self, kind: RecordKind, record_id: str, provisional: bool) -> None:
        tags = self._provisional.setdefault(kind, set())
        if provisional:
            tags.add(record_id)
        else:
            tags.discard(record_id)

    def _notify(self, kind: RecordKind) -> None:
        snapshot = self.snapshot(kind)
        # Copy: a listener may unsubscribe itself while being notified
        for listener in list(self._listeners.get(kind, [])):
            try:
                listener(snapshot)
            except Exception as e:
                self._logger.error(
                    "store_listener_failed",
                    record_kind=kind.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
