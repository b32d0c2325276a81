"""Read-only derived views over the record store."""

from lifesync.views.projector import (
    ALL,
    PRIORITY_WEIGHTS,
    ExpenseSummary,
    FieldFilter,
    LiveView,
    SortKey,
    ViewSpec,
    dedupe_habit_entries,
    priority_weight,
    project,
    summarize_expenses,
)

__all__ = [
    "ALL",
    "PRIORITY_WEIGHTS",
    "ExpenseSummary",
    "FieldFilter",
    "LiveView",
    "SortKey",
    "ViewSpec",
    "dedupe_habit_entries",
    "priority_weight",
    "project",
    "summarize_expenses",
]
