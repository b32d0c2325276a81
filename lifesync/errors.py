"""
Error taxonomy of the sync layer.

Remote service implementations raise RemoteServiceError subclasses
(see lifesync.services.remote.interface); the core translates them into
the errors below before they reach a caller.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from lifesync.models.results import ValidationResult


class LifeSyncError(Exception):
    """Base exception for the sync layer."""
    pass


class ValidationError(LifeSyncError):
    """Mutation input rejected locally; never sent to the network."""

    def __init__(self, kind: str, result: "ValidationResult"):
        self.kind = kind
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Invalid {kind} fields: {messages}")


class RemoteRequestError(LifeSyncError):
    """The remote service rejected or failed a create/update/delete."""

    def __init__(
        self,
        operation: str,
        kind: str,
        message: str,
        record_id: Optional[str] = None,
    ):
        self.operation = operation
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{operation} {kind} failed: {message}")


class SubscriptionError(LifeSyncError):
    """A live query could not be established or stopped delivering."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"Live query for {kind} failed: {message}")
