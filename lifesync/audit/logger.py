"""
Audit Logger

Every significant sync action is logged as a structured event.

The audit logger:
- Is synchronous: store pushes and projections never suspend
- Gracefully handles sink failures (never crashes the sync flow)
- Supports correlation IDs to trace a user action to its outcome
"""

from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from lifesync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An optional sink (e.g. a UI activity feed or a collector)
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        """
        Initialize audit logger.

        Args:
            sink: Callable receiving every event.
                  If None, only logs locally.
        """
        self._sink = sink
        self._logger = structlog.get_logger("lifesync.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Forwards to the sink if configured.

        Returns True if the sink accepted the event (or no sink configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._sink:
            try:
                self._sink(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_subscription_started(self, kind: str) -> None:
        self.log(AuditEventBuilder.subscription_started(kind))

    def log_subscription_stopped(self, kind: str, push_count: int) -> None:
        self.log(AuditEventBuilder.subscription_stopped(kind, push_count))

    def log_subscription_failed(self, kind: str, error: Exception) -> None:
        self.log(AuditEventBuilder.subscription_failed(kind, error))

    def log_snapshot_applied(
        self,
        kind: str,
        record_count: int,
        removed_count: int,
        is_synced: bool,
    ) -> None:
        self.log(AuditEventBuilder.snapshot_applied(
            kind=kind,
            record_count=record_count,
            removed_count=removed_count,
            is_synced=is_synced,
        ))

    def log_mutation_requested(
        self,
        operation: str,
        kind: str,
        record_id: Optional[str],
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.mutation_requested(
            operation=operation,
            kind=kind,
            record_id=record_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    def log_mutation_succeeded(
        self,
        operation: str,
        kind: str,
        record_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.mutation_succeeded(
            operation=operation,
            kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    def log_mutation_failed(
        self,
        operation: str,
        kind: str,
        record_id: Optional[str],
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.mutation_failed(
            operation=operation,
            kind=kind,
            record_id=record_id,
            error=error,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        operation: str,
        kind: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            kind=kind,
            issues=issues,
            correlation_id=correlation_id,
        ))

    def log_optimistic_applied(
        self,
        operation: str,
        kind: str,
        record_id: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.optimistic_applied(
            operation=operation,
            kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    def log_optimistic_rolled_back(
        self,
        operation: str,
        kind: str,
        record_id: str,
        restored: bool,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.optimistic_rolled_back(
            operation=operation,
            kind=kind,
            record_id=record_id,
            restored=restored,
            correlation_id=correlation_id,
        ))

    def log_signed_out(self, identity: Optional[str], released: list[str]) -> None:
        self.log(AuditEventBuilder.session_signed_out(identity, released))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a task update).
    """
    return uuid4()
