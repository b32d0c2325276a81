"""
View Projector

DESIGN DECISION: Projection is DETERMINISTIC and read-only.
Output is purely a function of (snapshot, filters, sort); the projector
never writes the store and never talks to the network.

Sorting is stable: ties keep snapshot order.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from lifesync.models.entities import (
    Expense,
    HabitEntry,
    KindLike,
    SyncRecord,
    TransactionType,
    resolve_kind,
)
from lifesync.store import RecordStore, Snapshot, Subscription


ALL = "ALL"

PRIORITY_WEIGHTS = {
    "URGENT": 4,
    "HIGH": 3,
    "MEDIUM": 2,
    "LOW": 1,
}


class SortKey(str, Enum):
    """Supported total orders for record lists."""
    NONE = "none"                # snapshot order
    DUE_DATE = "due_date"        # ascending, missing last
    PRIORITY = "priority"        # descending by weight
    CREATED_AT = "created_at"    # descending, missing last


class FieldFilter(BaseModel):
    """Equality predicate on one field. value == "ALL" matches everything."""

    field: str
    value: Any = ALL

    def matches(self, record: SyncRecord) -> bool:
        if _raw(self.value) == ALL:
            return True
        return _raw(getattr(record, self.field, None)) == _raw(self.value)


class ViewSpec(BaseModel):
    """What a list shows: AND-combined filters, then one sort order."""

    filters: list[FieldFilter] = Field(default_factory=list)
    sort: SortKey = SortKey.NONE

    @classmethod
    def where(cls, sort: SortKey = SortKey.NONE, **equals: Any) -> "ViewSpec":
        """ViewSpec.where(SortKey.PRIORITY, status="TODO")"""
        return cls(
            filters=[FieldFilter(field=name, value=value) for name, value in equals.items()],
            sort=sort,
        )


def _raw(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _timestamp(value: Any) -> Optional[float]:
    """Comparable number for dates and datetimes (naive treated as UTC)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp()
    return None


def priority_weight(record: SyncRecord) -> int:
    return PRIORITY_WEIGHTS.get(_raw(getattr(record, "priority", None)), 0)


def _sort_key(sort: SortKey) -> Optional[Callable[[SyncRecord], tuple]]:
    if sort == SortKey.DUE_DATE:
        def key(record):
            stamp = _timestamp(getattr(record, "due_date", None))
            return (stamp is None, stamp or 0.0)
        return key
    if sort == SortKey.PRIORITY:
        return lambda record: -priority_weight(record)
    if sort == SortKey.CREATED_AT:
        def key(record):
            stamp = _timestamp(record.created_at)
            return (stamp is None, -(stamp or 0.0))
        return key
    return None


def project(records: Sequence[SyncRecord], view: Optional[ViewSpec] = None) -> Snapshot:
    """Filter then stably sort a snapshot."""
    view = view or ViewSpec()
    selected = [r for r in records if all(f.matches(r) for f in view.filters)]
    key = _sort_key(view.sort)
    if key is not None:
        selected.sort(key=key)
    return tuple(selected)


# =============================================================================
# LIVE VIEW
# =============================================================================

ViewListener = Callable[[Snapshot], None]


class LiveView:
    """
    A projection kept current with the store.

    Recomputed on every store notification for its kind; the last output
    is memoized and served by `items`.
    """

    def __init__(self, store: RecordStore, kind: KindLike, view: Optional[ViewSpec] = None):
        self.kind = resolve_kind(kind)
        self.view = view or ViewSpec()
        self._listeners: list[ViewListener] = []
        self._logger = structlog.get_logger("lifesync.views")
        self._items: Snapshot = project(store.snapshot(self.kind), self.view)
        self._subscription: Subscription = store.subscribe(self.kind, self._recompute)

    @property
    def items(self) -> Snapshot:
        return self._items

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return release

    def close(self) -> None:
        self._subscription.unsubscribe()
        self._listeners.clear()

    def _recompute(self, snapshot: Snapshot) -> None:
        self._items = project(snapshot, self.view)
        for listener in list(self._listeners):
            try:
                listener(self._items)
            except Exception as e:
                self._logger.error("view_listener_failed", record_kind=self.kind.value, error=str(e))


# =============================================================================
# DERIVED SUMMARIES
# =============================================================================

def dedupe_habit_entries(entries: Iterable[HabitEntry]) -> Snapshot:
    """
    One entry per (habit_id, date).

    The most recently modified entry wins; equal modification times go to
    the later snapshot position. Keys keep first-seen order.
    """
    chosen: dict[tuple[str, date], HabitEntry] = {}
    for entry in entries:
        key = (entry.habit_id, entry.date)
        current = chosen.get(key)
        if current is None:
            chosen[key] = entry
            continue
        entry_stamp = _timestamp(entry.updated_at) or 0.0
        current_stamp = _timestamp(current.updated_at) or 0.0
        if entry_stamp >= current_stamp:
            chosen[key] = entry
    return tuple(chosen.values())


class ExpenseSummary(BaseModel):
    """Money totals over a set of Expense records."""

    income: float = 0.0
    expense: float = 0.0
    record_count: int = 0

    @property
    def net(self) -> float:
        return self.income - self.expense

    def add(self, record: Expense) -> None:
        if _raw(record.type) == TransactionType.INCOME.value:
            self.income += record.amount
        else:
            self.expense += record.amount
        self.record_count += 1


def summarize_expenses(
    records: Iterable[Expense],
    group_by: Optional[str] = None,
) -> dict[str, ExpenseSummary]:
    """
    Total income and spending.

    Records without a type count as spending.

    Args:
        group_by: None (single "total" bucket), "category" or "month"

    Returns:
        Summary per group key, keys in first-seen order
    """
    if group_by not in (None, "category", "month"):
        raise ValueError(f"Unsupported group_by: {group_by}")

    groups: dict[str, ExpenseSummary] = {}
    for record in records:
        if group_by == "category":
            key = record.category or "uncategorized"
        elif group_by == "month":
            key = record.date.strftime("%Y-%m")
        else:
            key = "total"

        if key not in groups:
            groups[key] = ExpenseSummary()
        groups[key].add(record)

    return groups
