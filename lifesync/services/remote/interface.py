"""
Abstract Remote Data Service Interface

DESIGN DECISION: The managed data service is an injected collaborator,
never a global client. This allows us to:
1. Swap the hosted backend without touching sync logic
2. Use the in-memory backend for local runs and tests
3. Simulate latency, dropped streams and rejected requests

Contract (fixed by the hosted service):
- Every call is scoped to the authenticated owner by the service itself
- Live queries push FULL snapshots of the owner's records of one kind,
  in order, until stopped
- Payloads use camelCase field names with JSON-compatible values
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel, Field

from lifesync.models.entities import RecordKind


class SnapshotPush(BaseModel):
    """One live-query delivery: every record of the kind the owner can see."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    is_synced: bool = Field(
        default=True,
        description="False while the service is still loading its initial page set"
    )


SnapshotCallback = Callable[[SnapshotPush], None]
ErrorCallback = Callable[[Exception], None]


class LiveQuery(ABC):
    """
    A standing subscription to one record kind.

    start() suspends until the service accepted the subscription;
    pushes then arrive through on_snapshot. stop() must be idempotent.
    """

    @abstractmethod
    async def start(
        self,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        """
        Establish the live connection.

        Raises:
            RemoteServiceError: If the subscription cannot be established
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the live connection. Safe to call in any state."""
        pass


class RemoteDataService(ABC):
    """
    Abstract interface for the managed, owner-scoped data service.

    Any backend implementation must implement these methods.
    """

    @abstractmethod
    def observe(self, kind: RecordKind) -> LiveQuery:
        """
        Create (but do not start) a live query for one kind.

        Args:
            kind: The record kind to observe
        """
        pass

    @abstractmethod
    async def create(self, kind: RecordKind, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Create a record.

        Args:
            kind: Record kind
            fields: Wire-format field values (no system fields)

        Returns:
            The created record, including id and system timestamps

        Raises:
            RemoteServiceError: If the service rejects the request
        """
        pass

    @abstractmethod
    async def update(
        self,
        kind: RecordKind,
        record_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Replace the given fields of an existing record.

        Fields not named are left untouched. The update is atomic.

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If the record doesn't exist for this owner
            RemoteServiceError: If the service rejects the request
        """
        pass

    @abstractmethod
    async def delete(self, kind: RecordKind, record_id: str) -> None:
        """
        Delete a record.

        Raises:
            RecordNotFoundError: If the record doesn't exist for this owner
            RemoteServiceError: If the service rejects the request
        """
        pass


class RemoteServiceError(Exception):
    """Base exception for remote data service operations."""
    pass


class RecordNotFoundError(RemoteServiceError):
    """Record not found for the calling owner."""
    pass


class AuthorizationError(RemoteServiceError):
    """Caller is not signed in or not allowed to touch the record."""
    pass


class RemoteUnavailableError(RemoteServiceError):
    """Could not reach the data service."""
    pass
