"""
Shared fixtures for LifeSync tests.

No network access: the in-memory backend stands in for the hosted
data service, and StubRemote gives tests full control over pushes.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from lifesync.audit import AuditLogger
from lifesync.config import SyncSettings
from lifesync.models.audit import AuditEvent
from lifesync.models.entities import RecordKind
from lifesync.services.auth import StaticAuthProvider
from lifesync.services.remote import (
    InMemoryBackend,
    InMemoryRemoteService,
    LiveQuery,
    RemoteDataService,
    SnapshotPush,
)
from lifesync.store import RecordStore
from lifesync.sync import MutationCoordinator, SubscriptionReconciler


FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

OWNER = "alice"


def task_payload(record_id: str, title: str = "Task", **fields) -> dict:
    """Wire-format Task as the data service pushes it."""
    payload = {
        "id": record_id,
        "owner": OWNER,
        "title": title,
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }
    payload.update(fields)
    return payload


class StubLiveQuery(LiveQuery):
    """Live query driven entirely by the test. Keeps delivering after stop()."""

    def __init__(self, gate: Optional[asyncio.Event] = None):
        self.gate = gate
        self.on_snapshot = None
        self.on_error = None
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self, on_snapshot, on_error) -> None:
        self.start_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        self.on_snapshot = on_snapshot
        self.on_error = on_error

    def stop(self) -> None:
        self.stop_calls += 1

    def push(self, items: list[dict], is_synced: bool = True) -> None:
        self.on_snapshot(SnapshotPush(items=items, is_synced=is_synced))


class StubRemote(RemoteDataService):
    """Remote whose live queries are StubLiveQuery instances."""

    def __init__(self, gate: Optional[asyncio.Event] = None):
        self.gate = gate
        self.queries: dict[RecordKind, StubLiveQuery] = {}

    def observe(self, kind: RecordKind) -> StubLiveQuery:
        query = StubLiveQuery(self.gate)
        self.queries[kind] = query
        return query

    async def create(self, kind, fields):
        raise NotImplementedError

    async def update(self, kind, record_id, fields):
        raise NotImplementedError

    async def delete(self, kind, record_id):
        raise NotImplementedError


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(_env_file=None)


@pytest.fixture
def audit_events() -> list[AuditEvent]:
    return []


@pytest.fixture
def audit_logger(audit_events) -> AuditLogger:
    return AuditLogger(sink=audit_events.append)


@pytest.fixture
def auth() -> StaticAuthProvider:
    return StaticAuthProvider(OWNER)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def remote(backend, auth) -> InMemoryRemoteService:
    return InMemoryRemoteService(backend=backend, auth=auth)


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def reconciler(remote, store, audit_logger, settings) -> SubscriptionReconciler:
    return SubscriptionReconciler(remote, store, audit_logger=audit_logger, settings=settings)


@pytest.fixture
def coordinator(remote, store, audit_logger, settings) -> MutationCoordinator:
    return MutationCoordinator(
        remote,
        store,
        audit_logger=audit_logger,
        settings=settings,
        clock=lambda: FIXED_NOW,
    )
