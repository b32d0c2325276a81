"""
Data Models Package

This package contains all Pydantic models used by LifeSync.
Every record flowing through the sync layer conforms to these schemas.
"""

from lifesync.models.entities import (
    CREATE_DEFAULTS,
    ENTITY_MODELS,
    ENUM_FIELDS,
    SYSTEM_FIELDS,
    Budget,
    Category,
    CategoryType,
    Event,
    Expense,
    Goal,
    GoalType,
    Habit,
    HabitEntry,
    HabitFrequency,
    HealthEntry,
    HealthEntryType,
    KindLike,
    Mood,
    Note,
    NoteType,
    PreferenceType,
    Priority,
    RecordKind,
    SyncRecord,
    Task,
    TaskStatus,
    TransactionType,
    UserPreference,
    field_names,
    get_model,
    normalize_field_names,
    parse_record,
    required_fields,
    resolve_kind,
)
from lifesync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from lifesync.models.results import (
    MutationResult,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Schema tables and helpers
    "CREATE_DEFAULTS",
    "ENTITY_MODELS",
    "ENUM_FIELDS",
    "SYSTEM_FIELDS",
    "KindLike",
    "field_names",
    "get_model",
    "normalize_field_names",
    "parse_record",
    "required_fields",
    "resolve_kind",
    # Record models
    "Budget",
    "Category",
    "Event",
    "Expense",
    "Goal",
    "Habit",
    "HabitEntry",
    "HealthEntry",
    "Note",
    "SyncRecord",
    "Task",
    "UserPreference",
    # Enums
    "CategoryType",
    "GoalType",
    "HabitFrequency",
    "HealthEntryType",
    "Mood",
    "NoteType",
    "PreferenceType",
    "Priority",
    "RecordKind",
    "TaskStatus",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Outcomes
    "MutationResult",
    "ValidationIssue",
    "ValidationResult",
]
