"""
Audit Models for LifeSync

Every significant synchronization action is described by an AuditEvent.
This provides:
1. Traceability of subscriptions, pushes and mutations
2. Debugging information when the local view diverges
3. A correlation id linking a user action to its remote outcome

DESIGN DECISION: Audit events are values. They are logged, never edited.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Live queries
    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_STOPPED = "subscription_stopped"
    SUBSCRIPTION_FAILED = "subscription_failed"
    SNAPSHOT_APPLIED = "snapshot_applied"

    # Mutations
    MUTATION_REQUESTED = "mutation_requested"
    MUTATION_SUCCEEDED = "mutation_succeeded"
    MUTATION_FAILED = "mutation_failed"
    VALIDATION_FAILED = "validation_failed"

    # Optimistic writes
    OPTIMISTIC_APPLIED = "optimistic_applied"
    OPTIMISTIC_ROLLED_BACK = "optimistic_rolled_back"

    # Session
    SESSION_SIGNED_OUT = "session_signed_out"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the sync trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which record kind / record is this about?
    record_kind: Optional[str] = None
    record_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Links a user action to its remote outcome"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "record_kind": self.record_kind,
            "record_id": self.record_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.subscription_started("Task")
        event = AuditEventBuilder.mutation_failed("update", "Task", record_id, error, correlation_id)
    """

    @staticmethod
    def subscription_started(kind: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_STARTED,
            record_kind=kind,
            description=f"Live query started for {kind}",
        )

    @staticmethod
    def subscription_stopped(kind: str, push_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_STOPPED,
            record_kind=kind,
            description=f"Live query released for {kind}",
            details={"push_count": push_count},
        )

    @staticmethod
    def subscription_failed(kind: str, error: Exception) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_FAILED,
            severity=AuditSeverity.ERROR,
            record_kind=kind,
            description=f"Live query failed for {kind}",
            error_type=type(error).__name__,
            error_message=str(error),
        )

    @staticmethod
    def snapshot_applied(
        kind: str,
        record_count: int,
        removed_count: int,
        is_synced: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_APPLIED,
            severity=AuditSeverity.DEBUG,
            record_kind=kind,
            description=f"Snapshot applied: {record_count} {kind} records",
            details={
                "record_count": record_count,
                "removed_count": removed_count,
                "is_synced": is_synced,
            },
        )

    @staticmethod
    def mutation_requested(
        operation: str,
        kind: str,
        record_id: Optional[str],
        fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REQUESTED,
            record_kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} requested for {kind}",
            details={"operation": operation, "fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def mutation_succeeded(
        operation: str,
        kind: str,
        record_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_SUCCEEDED,
            record_kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} confirmed by remote for {kind}",
            details={"operation": operation},
        )

    @staticmethod
    def mutation_failed(
        operation: str,
        kind: str,
        record_id: Optional[str],
        error: Exception,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            record_kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} rejected for {kind}",
            details={"operation": operation},
            error_type=type(error).__name__,
            error_message=str(error),
        )

    @staticmethod
    def validation_failed(
        operation: str,
        kind: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            record_kind=kind,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} validation failed with {len(issues)} issues",
            details={"operation": operation, "issues": issues},
        )

    @staticmethod
    def optimistic_applied(
        operation: str,
        kind: str,
        record_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPTIMISTIC_APPLIED,
            severity=AuditSeverity.DEBUG,
            record_kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"Provisional {operation} applied locally",
            details={"operation": operation},
        )

    @staticmethod
    def optimistic_rolled_back(
        operation: str,
        kind: str,
        record_id: str,
        restored: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPTIMISTIC_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            record_kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"Provisional {operation} reverted",
            details={"operation": operation, "restored": restored},
        )

    @staticmethod
    def session_signed_out(identity: Optional[str], released: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_SIGNED_OUT,
            description="Session signed out and local cache cleared",
            details={"identity": identity, "released_kinds": released},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_type=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
