"""
Entity Schema for LifeSync

Static description of every record kind the remote data service stores.
The remote schema (field names, types, enumerated values, required-ness)
is a fixed external contract; these models mirror it one-to-one.

Models add no constraints the remote schema does not have: they decode
every push, and one record another device wrote must never make a whole
snapshot undecodable. Stricter rules for outgoing mutations (non-empty
required strings, formats) live in RecordValidator.

DESIGN DECISION: Records are frozen pydantic models.
The Record Store replaces records, it never edits them in place, so a
snapshot handed to a listener can never change underneath it.

Wire names are camelCase (as the remote service sends them); Python
attribute names are snake_case. Both are accepted on input.
"""

from datetime import date, datetime
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


# =============================================================================
# RECORD KINDS
# =============================================================================

class RecordKind(str, Enum):
    """Every entity type stored by the remote data service."""
    TASK = "Task"
    EVENT = "Event"
    GOAL = "Goal"
    HABIT = "Habit"
    HABIT_ENTRY = "HabitEntry"
    NOTE = "Note"
    HEALTH_ENTRY = "HealthEntry"
    EXPENSE = "Expense"
    BUDGET = "Budget"
    CATEGORY = "Category"
    USER_PREFERENCE = "UserPreference"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, Enum):
    """
    Task lifecycle status.

    completedAt is set if and only if status is COMPLETED.
    """
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GoalType(str, Enum):
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"


class HabitFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class NoteType(str, Enum):
    NOTE = "NOTE"
    JOURNAL = "JOURNAL"
    VOICE = "VOICE"
    IMAGE = "IMAGE"


class Mood(str, Enum):
    VERY_HAPPY = "VERY_HAPPY"
    HAPPY = "HAPPY"
    NEUTRAL = "NEUTRAL"
    SAD = "SAD"
    VERY_SAD = "VERY_SAD"


class HealthEntryType(str, Enum):
    SLEEP = "SLEEP"
    WATER = "WATER"
    EXERCISE = "EXERCISE"
    MEAL = "MEAL"
    WEIGHT = "WEIGHT"


class TransactionType(str, Enum):
    """Direction of money for an Expense record."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class CategoryType(str, Enum):
    TASK = "TASK"
    EVENT = "EVENT"
    GOAL = "GOAL"
    HABIT = "HABIT"
    NOTE = "NOTE"
    EXPENSE = "EXPENSE"


class PreferenceType(str, Enum):
    THEME = "THEME"
    NOTIFICATION = "NOTIFICATION"
    PRIVACY = "PRIVACY"
    GENERAL = "GENERAL"


# =============================================================================
# BASE RECORD
# =============================================================================

class SyncRecord(BaseModel):
    """
    Fields shared by every stored record.

    id, owner, created_at and updated_at are maintained by the remote
    service. The client never sends them.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    kind: ClassVar[RecordKind]

    id: str = Field(
        ...,
        description="Identifier assigned by the remote service"
    )
    owner: Optional[str] = Field(
        default=None,
        description="Owning identity, enforced remotely"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_wire(self) -> dict:
        """Serialize using remote (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# RECORD MODELS
# =============================================================================

class Task(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.TASK

    title: str
    description: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    reminder_date: Optional[datetime] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = None
    completed_at: Optional[datetime] = None
    parent_task_id: Optional[str] = Field(
        default=None,
        description="Parent task for subtasks (no cascade on delete)"
    )


class Event(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.EVENT

    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    location: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    is_all_day: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = None
    reminder_minutes: Optional[int] = None


class Goal(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.GOAL

    title: str
    description: Optional[str] = None
    type: Optional[GoalType] = None
    target_date: Optional[datetime] = None
    current_progress: Optional[float] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    category: Optional[str] = None
    is_completed: Optional[bool] = None


class Habit(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.HABIT

    name: str
    description: Optional[str] = None
    frequency: Optional[HabitFrequency] = None
    target_count: Optional[int] = None
    category: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None


class HabitEntry(SyncRecord):
    """One check-in of a habit. (habit_id, date) is the presentation dedup key."""
    kind: ClassVar[RecordKind] = RecordKind.HABIT_ENTRY

    habit_id: str
    date: date
    completed: Optional[bool] = None
    notes: Optional[str] = None


class Note(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.NOTE

    title: Optional[str] = None
    content: str
    type: Optional[NoteType] = None
    tags: Optional[list[str]] = None
    category: Optional[str] = None
    mood: Optional[Mood] = None
    is_private: Optional[bool] = None


class HealthEntry(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.HEALTH_ENTRY

    type: Optional[HealthEntryType] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    date: date
    notes: Optional[str] = None


class Expense(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.EXPENSE

    amount: float
    description: str
    category: Optional[str] = None
    date: date
    type: Optional[TransactionType] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = None


class Budget(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.BUDGET

    category: str
    monthly_limit: float
    current_spent: Optional[float] = None
    month: str = Field(
        ...,
        description="Budget month, YYYY-MM when written by this client"
    )


class Category(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.CATEGORY

    name: str
    type: Optional[CategoryType] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class UserPreference(SyncRecord):
    kind: ClassVar[RecordKind] = RecordKind.USER_PREFERENCE

    key: str
    value: str
    type: Optional[PreferenceType] = None


# =============================================================================
# STATIC TABLES
# =============================================================================

ENTITY_MODELS: dict[RecordKind, type[SyncRecord]] = {
    model.kind: model
    for model in (
        Task, Event, Goal, Habit, HabitEntry, Note,
        HealthEntry, Expense, Budget, Category, UserPreference,
    )
}

SYSTEM_FIELDS = frozenset({"id", "owner", "created_at", "updated_at"})

# Enumerated-field validity table
ENUM_FIELDS: dict[RecordKind, dict[str, type[Enum]]] = {
    RecordKind.TASK: {"priority": Priority, "status": TaskStatus},
    RecordKind.EVENT: {},
    RecordKind.GOAL: {"type": GoalType},
    RecordKind.HABIT: {"frequency": HabitFrequency},
    RecordKind.HABIT_ENTRY: {},
    RecordKind.NOTE: {"type": NoteType, "mood": Mood},
    RecordKind.HEALTH_ENTRY: {"type": HealthEntryType},
    RecordKind.EXPENSE: {"type": TransactionType},
    RecordKind.BUDGET: {},
    RecordKind.CATEGORY: {"type": CategoryType},
    RecordKind.USER_PREFERENCE: {"type": PreferenceType},
}

# Values the client fills in on create when the caller leaves them out
CREATE_DEFAULTS: dict[RecordKind, dict[str, Any]] = {
    RecordKind.TASK: {"status": TaskStatus.TODO},
}


# =============================================================================
# SCHEMA HELPERS
# =============================================================================

KindLike = Union[RecordKind, str]


def resolve_kind(kind: KindLike) -> RecordKind:
    """Accept a RecordKind or its name ("Task")."""
    if isinstance(kind, RecordKind):
        return kind
    try:
        return RecordKind(kind)
    except ValueError:
        raise ValueError(f"Unknown record kind: {kind!r}") from None


def get_model(kind: KindLike) -> type[SyncRecord]:
    return ENTITY_MODELS[resolve_kind(kind)]


def field_names(kind: KindLike) -> frozenset[str]:
    """Client-settable fields of a kind (system fields excluded)."""
    return frozenset(get_model(kind).model_fields) - SYSTEM_FIELDS


def required_fields(kind: KindLike) -> frozenset[str]:
    model = get_model(kind)
    return frozenset(
        name
        for name, info in model.model_fields.items()
        if info.is_required() and name not in SYSTEM_FIELDS
    )


@lru_cache(maxsize=None)
def _alias_table(kind: RecordKind) -> dict[str, str]:
    model = ENTITY_MODELS[kind]
    table = {}
    for name, info in model.model_fields.items():
        table[name] = name
        if info.alias:
            table[info.alias] = name
    return table


def normalize_field_names(kind: KindLike, fields: dict[str, Any]) -> dict[str, Any]:
    """
    Map wire (camelCase) keys to Python field names.

    Unknown keys are kept untouched so validation can report them.
    """
    table = _alias_table(resolve_kind(kind))
    return {table.get(key, key): value for key, value in fields.items()}


def wire_name(kind: KindLike, name: str) -> str:
    info = get_model(kind).model_fields[name]
    return info.alias or name


@lru_cache(maxsize=None)
def field_adapter(kind: RecordKind, name: str) -> TypeAdapter:
    """
    TypeAdapter enforcing one field's type and constraints.

    Uses the record models' string handling, so a validated value is the
    one the confirming push will carry back.
    """
    info = ENTITY_MODELS[kind].model_fields[name]
    config = ConfigDict(str_strip_whitespace=SyncRecord.model_config["str_strip_whitespace"])
    if info.metadata:
        return TypeAdapter(Annotated[(info.annotation, *info.metadata)], config=config)
    return TypeAdapter(info.annotation, config=config)


def to_wire_fields(kind: KindLike, values: dict[str, Any]) -> dict[str, Any]:
    """Serialize validated field values for the remote service."""
    record_kind = resolve_kind(kind)
    return {
        wire_name(record_kind, name): field_adapter(record_kind, name).dump_python(value, mode="json")
        for name, value in values.items()
    }


def parse_record(kind: KindLike, payload: Union[dict, SyncRecord]) -> SyncRecord:
    """Build a record model from a remote payload."""
    model = get_model(kind)
    if isinstance(payload, model):
        return payload
    return model.model_validate(payload)
