"""
In-Memory Data Service

A complete implementation of the RemoteDataService contract that keeps
records in process memory.

DESIGN DECISION: One InMemoryBackend can serve several
InMemoryRemoteService instances. Each service plays one signed-in
device; devices of the same owner see each other's changes through
their live queries, devices of other owners never do.

Beyond the contract it can:
- hold pushes back until flush() (auto_push=False) to simulate latency
- reject the next call of an operation (fail_next)
- drop live streams (drop_stream)
- deliver an arbitrary payload (emit) to exercise decoding failures
"""

import asyncio
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from lifesync.models.entities import RecordKind, required_fields, wire_name
from lifesync.services.auth import AuthProvider, StaticAuthProvider
from lifesync.services.remote.interface import (
    AuthorizationError,
    ErrorCallback,
    LiveQuery,
    RecordNotFoundError,
    RemoteDataService,
    RemoteServiceError,
    RemoteUnavailableError,
    SnapshotCallback,
    SnapshotPush,
)


OPERATIONS = ("subscribe", "create", "update", "delete")

_SYSTEM_WIRE_FIELDS = ("id", "owner", "createdAt", "updatedAt")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryBackend:
    """
    Record tables shared by every connected device.

    Rows are wire-format dicts stamped with their owner.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], str]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._tables: dict[RecordKind, OrderedDict[str, dict]] = {
            kind: OrderedDict() for kind in RecordKind
        }
        self._services: list["InMemoryRemoteService"] = []
        self._clock = clock or _utc_now_iso
        self._id_factory = id_factory or (lambda: str(uuid4()))

    def attach(self, service: "InMemoryRemoteService") -> None:
        self._services.append(service)

    def rows(self, kind: RecordKind, owner: str) -> list[dict]:
        return [
            dict(row) for row in self._tables[kind].values()
            if row["owner"] == owner
        ]

    def insert(self, kind: RecordKind, owner: str, fields: dict[str, Any]) -> dict:
        now = self._clock()
        row = {key: value for key, value in fields.items() if key not in _SYSTEM_WIRE_FIELDS}
        row.update(id=self._id_factory(), owner=owner, createdAt=now, updatedAt=now)
        self._tables[kind][row["id"]] = row
        self._changed(kind, owner)
        return dict(row)

    def patch(self, kind: RecordKind, owner: str, record_id: str, fields: dict[str, Any]) -> dict:
        row = self._owned_row(kind, owner, record_id)
        row.update({key: value for key, value in fields.items() if key not in _SYSTEM_WIRE_FIELDS})
        row["updatedAt"] = self._clock()
        self._changed(kind, owner)
        return dict(row)

    def remove(self, kind: RecordKind, owner: str, record_id: str) -> None:
        self._owned_row(kind, owner, record_id)
        del self._tables[kind][record_id]
        self._changed(kind, owner)

    def _owned_row(self, kind: RecordKind, owner: str, record_id: str) -> dict:
        row = self._tables[kind].get(record_id)
        # Another owner's record is indistinguishable from a missing one
        if row is None or row["owner"] != owner:
            raise RecordNotFoundError(f"{kind.value} not found: {record_id}")
        return row

    def _changed(self, kind: RecordKind, owner: str) -> None:
        for service in list(self._services):
            service._on_backend_change(kind, owner)


class InMemoryLiveQuery(LiveQuery):
    """Live query of one device for one kind."""

    def __init__(self, service: "InMemoryRemoteService", kind: RecordKind):
        self._service = service
        self._kind = kind
        self._owner: Optional[str] = None
        self._on_snapshot: Optional[SnapshotCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._active = False

    @property
    def kind(self) -> RecordKind:
        return self._kind

    @property
    def active(self) -> bool:
        return self._active

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    async def start(self, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> None:
        await self._service._round_trip("subscribe")
        self._owner = self._service._require_owner()
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._active = True
        self._service._live_queries.append(self)
        self.deliver()

    def deliver(self, items: Optional[list[dict]] = None, is_synced: bool = True) -> None:
        """Push the owner's current rows (or the given items)."""
        if not self._active:
            return
        if items is None:
            items = self._service.backend.rows(self._kind, self._owner)
        self._on_snapshot(SnapshotPush(items=items, is_synced=is_synced))

    def fail(self, error: Exception) -> None:
        if not self._active:
            return
        on_error = self._on_error
        self.stop()
        on_error(error)

    def stop(self) -> None:
        self._active = False
        if self in self._service._live_queries:
            self._service._live_queries.remove(self)


class InMemoryRemoteService(RemoteDataService):
    """
    One signed-in device talking to an InMemoryBackend.

    Requests are scoped to auth.current_identity(), like the hosted service.
    """

    def __init__(
        self,
        backend: Optional[InMemoryBackend] = None,
        auth: Optional[AuthProvider] = None,
        auto_push: bool = True,
        latency_seconds: float = 0.0,
    ):
        self.backend = backend or InMemoryBackend()
        self._auth = auth or StaticAuthProvider("local-user")
        self.auto_push = auto_push
        self.latency_seconds = latency_seconds
        self._live_queries: list[InMemoryLiveQuery] = []
        self._pending: set[RecordKind] = set()
        self._failures: dict[str, list[Exception]] = {op: [] for op in OPERATIONS}
        self._logger = structlog.get_logger("lifesync.remote.memory")
        self.backend.attach(self)

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    def observe(self, kind: RecordKind) -> InMemoryLiveQuery:
        return InMemoryLiveQuery(self, kind)

    async def create(self, kind: RecordKind, fields: dict[str, Any]) -> dict[str, Any]:
        await self._round_trip("create")
        owner = self._require_owner()
        for name in required_fields(kind):
            key = wire_name(kind, name)
            if fields.get(key) is None:
                raise RemoteServiceError(f"{kind.value}.{key} is required")
        return self.backend.insert(kind, owner, fields)

    async def update(
        self,
        kind: RecordKind,
        record_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        await self._round_trip("update")
        owner = self._require_owner()
        return self.backend.patch(kind, owner, record_id, fields)

    async def delete(self, kind: RecordKind, record_id: str) -> None:
        await self._round_trip("delete")
        owner = self._require_owner()
        self.backend.remove(kind, owner, record_id)

    # -------------------------------------------------------------------------
    # Simulation controls
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        """Make the next call of an operation raise."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._failures[operation].append(
            error or RemoteUnavailableError(f"Simulated {operation} failure")
        )

    def flush(self, kind: Optional[RecordKind] = None) -> None:
        """Deliver held-back pushes (auto_push=False)."""
        kinds = [kind] if kind is not None else list(self._pending)
        for pending_kind in kinds:
            self._pending.discard(pending_kind)
            self._push(pending_kind)

    def emit(
        self,
        kind: RecordKind,
        items: Optional[list[dict]] = None,
        is_synced: bool = True,
    ) -> None:
        """Push to every live query of a kind right now."""
        for query in self._queries(kind):
            query.deliver(items=items, is_synced=is_synced)

    def drop_stream(self, kind: RecordKind, error: Optional[Exception] = None) -> None:
        """Terminate live queries of a kind with an error."""
        for query in self._queries(kind):
            query.fail(error or RemoteUnavailableError("Connection lost"))

    def live_query_count(self, kind: Optional[RecordKind] = None) -> int:
        return len(self._queries(kind))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _queries(self, kind: Optional[RecordKind] = None) -> list[InMemoryLiveQuery]:
        return [q for q in self._live_queries if kind is None or q.kind == kind]

    def _require_owner(self) -> str:
        owner = self._auth.current_identity()
        if not owner:
            raise AuthorizationError("Not signed in")
        return owner

    async def _round_trip(self, operation: str) -> None:
        await asyncio.sleep(self.latency_seconds)
        failures = self._failures[operation]
        if failures:
            error = failures.pop(0)
            self._logger.debug("simulated_failure", operation=operation, error=str(error))
            raise error

    def _on_backend_change(self, kind: RecordKind, owner: str) -> None:
        if not any(q.owner == owner for q in self._queries(kind)):
            return
        if self.auto_push:
            self._push(kind)
        else:
            self._pending.add(kind)

    def _push(self, kind: RecordKind) -> None:
        for query in self._queries(kind):
            query.deliver()
