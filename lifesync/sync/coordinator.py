"""
Mutation Coordinator

Executes create/update/delete against the remote service and keeps the
local view usable while requests are in flight.

GUARANTEES:
- Invalid input is rejected locally and never reaches the network
- create never writes the store: the confirming live-query push is the
  only source of new records, so a record cannot appear twice
- Optimistic writes are tagged provisional and are overwritten by the
  next authoritative push; on failure they are reverted unless a push
  has arrived since (the push is the truth then). This holds for any
  exception, including cancellation
- Remote failures and timeouts are returned as a MutationResult; any other
  exception propagates after the provisional write is reverted
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError

from lifesync.audit import AuditLogger, create_correlation_id
from lifesync.config import SyncSettings, get_settings
from lifesync.errors import RemoteRequestError, ValidationError
from lifesync.models.entities import (
    KindLike,
    RecordKind,
    SyncRecord,
    normalize_field_names,
    parse_record,
    resolve_kind,
    to_wire_fields,
)
from lifesync.models.results import MutationResult, ValidationResult
from lifesync.services.remote import RemoteDataService, RemoteServiceError
from lifesync.store import RecordStore
from lifesync.sync.policies import Clock, apply_create_defaults, apply_status_policy
from lifesync.validation import RecordValidator


T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MutationCoordinator:
    """
    Sends record mutations for one signed-in session.

    Requests are not ordered relative to each other; two concurrent
    updates of one record are applied remotely in either order.
    """

    def __init__(
        self,
        remote: RemoteDataService,
        store: RecordStore,
        validator: Optional[RecordValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._remote = remote
        self._store = store
        self._validator = validator or RecordValidator()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().sync
        self._clock = clock or _utc_now
        self._logger = structlog.get_logger("lifesync.coordinator")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create(
        self,
        kind: KindLike,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Create a record.

        The new record reaches the store through the live-query push,
        not through this call.
        """
        record_kind = resolve_kind(kind)
        correlation_id = correlation_id or create_correlation_id()

        prepared = normalize_field_names(record_kind, fields)
        prepared = apply_create_defaults(record_kind, prepared)
        prepared = apply_status_policy(record_kind, prepared, self._clock)

        validation = self._validator.validate_create(record_kind, prepared)
        if not validation.is_valid:
            return self._rejected("create", record_kind, None, validation, correlation_id)

        self._audit.log_mutation_requested(
            operation="create",
            kind=record_kind.value,
            record_id=None,
            fields=sorted(validation.values),
            correlation_id=correlation_id,
        )

        try:
            response = await self._send(
                self._remote.create(record_kind, to_wire_fields(record_kind, validation.values))
            )
        except (RemoteServiceError, asyncio.TimeoutError) as e:
            return self._failed("create", record_kind, None, e, correlation_id)

        record = self._decode(record_kind, response)
        record_id = record.id if record else response.get("id")
        self._audit.log_mutation_succeeded("create", record_kind.value, record_id, correlation_id)

        return MutationResult(
            operation="create",
            kind=record_kind.value,
            success=True,
            record_id=record_id,
            record=record,
        )

    async def update(
        self,
        kind: KindLike,
        record_id: str,
        fields: dict[str, Any],
        optimistic: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Replace the given fields of a record.

        Args:
            optimistic: Write a provisional copy to the store right away.
                        Defaults to the optimistic_updates setting.
        """
        record_kind = resolve_kind(kind)
        correlation_id = correlation_id or create_correlation_id()

        prepared = normalize_field_names(record_kind, fields)
        prepared = apply_status_policy(record_kind, prepared, self._clock)

        validation = self._validator.validate_update(record_kind, prepared)
        if not validation.is_valid:
            return self._rejected("update", record_kind, record_id, validation, correlation_id)

        self._audit.log_mutation_requested(
            operation="update",
            kind=record_kind.value,
            record_id=record_id,
            fields=sorted(validation.values),
            correlation_id=correlation_id,
        )

        previous = self._store.get(record_kind, record_id) if self._use_optimistic(optimistic) else None
        was_provisional = self._store.is_provisional(record_kind, record_id)
        generation = self._store.generation(record_kind)
        provisional = None

        if previous is not None:
            provisional = previous.model_copy(update=validation.values)
            self._store.upsert(record_kind, provisional, provisional=True)
            self._audit.log_optimistic_applied("update", record_kind.value, record_id, correlation_id)

        try:
            response = await self._send(
                self._remote.update(
                    record_kind,
                    record_id,
                    to_wire_fields(record_kind, validation.values),
                )
            )
        except (RemoteServiceError, asyncio.TimeoutError) as e:
            if provisional is not None:
                self._revert_update(
                    record_kind, previous, provisional, was_provisional, generation, correlation_id
                )
            return self._failed("update", record_kind, record_id, e, correlation_id)
        except BaseException:
            if provisional is not None:
                self._revert_update(
                    record_kind, previous, provisional, was_provisional, generation, correlation_id
                )
            raise

        self._audit.log_mutation_succeeded("update", record_kind.value, record_id, correlation_id)

        return MutationResult(
            operation="update",
            kind=record_kind.value,
            success=True,
            record_id=record_id,
            record=self._decode(record_kind, response),
            optimistic=provisional is not None,
        )

    async def delete(
        self,
        kind: KindLike,
        record_id: str,
        optimistic: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Delete a record.

        Related records (e.g. subtasks) are left in place.
        """
        record_kind = resolve_kind(kind)
        correlation_id = correlation_id or create_correlation_id()

        self._audit.log_mutation_requested(
            operation="delete",
            kind=record_kind.value,
            record_id=record_id,
            fields=[],
            correlation_id=correlation_id,
        )

        previous = self._store.get(record_kind, record_id) if self._use_optimistic(optimistic) else None
        was_provisional = self._store.is_provisional(record_kind, record_id)
        generation = self._store.generation(record_kind)

        if previous is not None:
            self._store.remove(record_kind, record_id)
            self._audit.log_optimistic_applied("delete", record_kind.value, record_id, correlation_id)

        try:
            await self._send(self._remote.delete(record_kind, record_id))
        except (RemoteServiceError, asyncio.TimeoutError) as e:
            if previous is not None:
                self._revert_delete(record_kind, previous, was_provisional, generation, correlation_id)
            return self._failed("delete", record_kind, record_id, e, correlation_id)
        except BaseException:
            if previous is not None:
                self._revert_delete(record_kind, previous, was_provisional, generation, correlation_id)
            raise

        self._audit.log_mutation_succeeded("delete", record_kind.value, record_id, correlation_id)

        return MutationResult(
            operation="delete",
            kind=record_kind.value,
            success=True,
            record_id=record_id,
            optimistic=previous is not None,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _use_optimistic(self, optimistic: Optional[bool]) -> bool:
        if optimistic is None:
            return self._settings.optimistic_updates
        return optimistic

    def _revert_update(
        self,
        kind: RecordKind,
        previous: SyncRecord,
        provisional: SyncRecord,
        was_provisional: bool,
        generation: int,
        correlation_id: UUID,
    ) -> None:
        """Put the pre-update record back unless a push has replaced the provisional copy."""
        restored = (
            self._store.generation(kind) == generation
            and self._store.get(kind, previous.id) is provisional
        )
        if restored:
            self._store.upsert(kind, previous, provisional=was_provisional)
        self._audit.log_optimistic_rolled_back(
            "update", kind.value, previous.id, restored, correlation_id
        )

    def _revert_delete(
        self,
        kind: RecordKind,
        previous: SyncRecord,
        was_provisional: bool,
        generation: int,
        correlation_id: UUID,
    ) -> None:
        restored = (
            self._store.generation(kind) == generation
            and self._store.get(kind, previous.id) is None
        )
        if restored:
            self._store.upsert(kind, previous, provisional=was_provisional)
        self._audit.log_optimistic_rolled_back(
            "delete", kind.value, previous.id, restored, correlation_id
        )

    async def _send(self, request: Awaitable[T]) -> T:
        return await asyncio.wait_for(request, timeout=self._settings.request_timeout_seconds)

    def _decode(self, kind: RecordKind, response: Any) -> Optional[SyncRecord]:
        if not isinstance(response, dict):
            return None
        try:
            return parse_record(kind, response)
        except PydanticValidationError as e:
            self._logger.warning(
                "mutation_response_undecodable",
                record_kind=kind.value,
                error=str(e),
            )
            return None

    def _rejected(
        self,
        operation: str,
        kind: RecordKind,
        record_id: Optional[str],
        validation: ValidationResult,
        correlation_id: UUID,
    ) -> MutationResult:
        self._audit.log_validation_failed(
            operation=operation,
            kind=kind.value,
            issues=validation.issues_as_dicts(),
            correlation_id=correlation_id,
        )
        return MutationResult(
            operation=operation,
            kind=kind.value,
            success=False,
            record_id=record_id,
            error=ValidationError(kind.value, validation),
        )

    def _failed(
        self,
        operation: str,
        kind: RecordKind,
        record_id: Optional[str],
        cause: Exception,
        correlation_id: UUID,
    ) -> MutationResult:
        message = str(cause) or "request timed out"
        error = RemoteRequestError(operation, kind.value, message, record_id=record_id)
        error.__cause__ = cause
        self._audit.log_mutation_failed(operation, kind.value, record_id, cause, correlation_id)
        return MutationResult(
            operation=operation,
            kind=kind.value,
            success=False,
            record_id=record_id,
            error=error,
        )
