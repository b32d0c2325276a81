"""
Subscription Reconciler

Keeps the Record Store equal to the remote service's view of each kind
the UI currently cares about.

GUARANTEES:
- Every push is a full snapshot and REPLACES the cached set of its kind:
  records absent from the push are removed, pushed records overwrite any
  provisional (optimistic) copy with the same id
- Pushes of one kind are applied in delivery order
- After a live query is released, no push reaches the store
- A failed stream leaves the store at its last-known-good state and
  marks the handle FAILED so the UI can show a degraded view
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from lifesync.audit import AuditLogger
from lifesync.config import SyncSettings, get_settings
from lifesync.errors import SubscriptionError
from lifesync.models.entities import KindLike, RecordKind, parse_record, resolve_kind
from lifesync.services.remote import (
    LiveQuery,
    RemoteDataService,
    RemoteServiceError,
    SnapshotPush,
)
from lifesync.store import RecordStore


class SubscriptionStatus(str, Enum):
    """Lifecycle of one live query."""
    PENDING = "pending"   # establishing
    LIVE = "live"         # receiving pushes
    FAILED = "failed"     # stream dropped or undecodable push
    STOPPED = "stopped"   # released by the client


ErrorHandler = Callable[[SubscriptionError], None]


class LiveQueryHandle:
    """
    Client-side state of one live query.

    stop() is idempotent and safe from any state.
    """

    def __init__(
        self,
        kind: RecordKind,
        live_query: LiveQuery,
        reconciler: "SubscriptionReconciler",
        on_error: Optional[ErrorHandler] = None,
    ):
        self.kind = kind
        self.status = SubscriptionStatus.PENDING
        self.is_synced = False
        self.push_count = 0
        self.last_error: Optional[SubscriptionError] = None
        self._live_query = live_query
        self._reconciler = reconciler
        self._on_error = on_error
        self._establishing: Optional[asyncio.Future] = None

    @property
    def accepting(self) -> bool:
        """Whether pushes for this handle may still reach the store."""
        return self.status in (SubscriptionStatus.PENDING, SubscriptionStatus.LIVE)

    @property
    def degraded(self) -> bool:
        return self.status == SubscriptionStatus.FAILED

    def stop(self) -> None:
        self._reconciler._release(self)

    def __repr__(self) -> str:
        return f"<LiveQueryHandle {self.kind.value} {self.status.value} pushes={self.push_count}>"


class SubscriptionReconciler:
    """
    Owns the live queries of one signed-in session.

    At most one live query per kind; subscribing twice returns the
    existing handle while it is still pending or live. Callers that
    subscribe while a query is being established share its outcome.
    """

    def __init__(
        self,
        remote: RemoteDataService,
        store: RecordStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self._remote = remote
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().sync
        self._handles: dict[RecordKind, LiveQueryHandle] = {}
        self._logger = structlog.get_logger("lifesync.reconciler")

    def handle(self, kind: KindLike) -> Optional[LiveQueryHandle]:
        return self._handles.get(resolve_kind(kind))

    @property
    def live_kinds(self) -> list[RecordKind]:
        return [kind for kind, handle in self._handles.items() if handle.accepting]

    async def subscribe(
        self,
        kind: KindLike,
        on_error: Optional[ErrorHandler] = None,
    ) -> LiveQueryHandle:
        """
        Start keeping one kind in sync.

        Returns once the remote service accepted the live query.

        Raises:
            SubscriptionError: If the live query cannot be established
                after the configured attempts
        """
        record_kind = resolve_kind(kind)
        handle = self._handles.get(record_kind)
        if handle is None or not handle.accepting:
            live_query = self._remote.observe(record_kind)
            handle = LiveQueryHandle(record_kind, live_query, self, on_error)
            self._handles[record_kind] = handle
            handle._establishing = asyncio.ensure_future(self._start(handle))

        # Shielded: a cancelled caller must not abort setup for the others
        await asyncio.shield(handle._establishing)
        return handle

    async def _start(self, handle: LiveQueryHandle) -> None:
        kind = handle.kind
        try:
            await self._establish(handle)
        except RemoteServiceError as e:
            if handle.status == SubscriptionStatus.STOPPED:
                return
            error = SubscriptionError(kind.value, str(e))
            handle.status = SubscriptionStatus.FAILED
            handle.last_error = error
            self._audit.log_subscription_failed(kind.value, e)
            raise error from e

        if handle.status == SubscriptionStatus.STOPPED:
            # Released while the service was still accepting it
            handle._live_query.stop()
            return

        if handle.status == SubscriptionStatus.PENDING:
            handle.status = SubscriptionStatus.LIVE
        self._audit.log_subscription_started(kind.value)

    def unsubscribe(self, kind: KindLike) -> None:
        """Release the live query of a kind. No-op if there is none."""
        handle = self._handles.get(resolve_kind(kind))
        if handle is not None:
            handle.stop()

    def unsubscribe_all(self) -> list[RecordKind]:
        """Release every live query. Returns the kinds that were released."""
        released = []
        for kind, handle in list(self._handles.items()):
            if handle.status != SubscriptionStatus.STOPPED:
                released.append(kind)
            handle.stop()
        return released

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _establish(self, handle: LiveQueryHandle) -> None:
        settings = self._settings
        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.subscribe_retry_attempts),
            wait=wait_exponential(
                multiplier=settings.subscribe_retry_min_wait_seconds,
                min=settings.subscribe_retry_min_wait_seconds,
                max=settings.subscribe_retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(RemoteServiceError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if handle.status == SubscriptionStatus.STOPPED:
                    return
                await handle._live_query.start(
                    lambda push: self._apply_push(handle, push),
                    lambda error: self._on_stream_error(handle, error),
                )

    def _apply_push(self, handle: LiveQueryHandle, push: SnapshotPush) -> None:
        kind = handle.kind
        if not handle.accepting or self._store.closed:
            self._logger.debug(
                "push_ignored",
                record_kind=kind.value,
                status=handle.status.value,
            )
            return

        try:
            records = [parse_record(kind, item) for item in push.items]
        except PydanticValidationError as e:
            self._fail(handle, SubscriptionError(kind.value, f"undecodable snapshot: {e}"), e)
            return

        removed = self._store.replace_all(kind, records)
        handle.push_count += 1
        handle.is_synced = push.is_synced
        self._audit.log_snapshot_applied(
            kind=kind.value,
            record_count=len(records),
            removed_count=removed,
            is_synced=push.is_synced,
        )

    def _on_stream_error(self, handle: LiveQueryHandle, error: Exception) -> None:
        if not handle.accepting:
            return
        self._fail(handle, SubscriptionError(handle.kind.value, str(error)), error)

    def _fail(
        self,
        handle: LiveQueryHandle,
        error: SubscriptionError,
        cause: Exception,
    ) -> None:
        error.__cause__ = cause
        handle.status = SubscriptionStatus.FAILED
        handle.last_error = error
        handle._live_query.stop()
        self._audit.log_subscription_failed(handle.kind.value, cause)

        if handle._on_error is not None:
            try:
                handle._on_error(error)
            except Exception as e:
                self._logger.error(
                    "subscription_error_handler_failed",
                    record_kind=handle.kind.value,
                    error=str(e),
                )

    def _release(self, handle: LiveQueryHandle) -> None:
        if self._handles.get(handle.kind) is handle:
            del self._handles[handle.kind]
        if handle.status == SubscriptionStatus.STOPPED:
            return
        handle.status = SubscriptionStatus.STOPPED
        handle._live_query.stop()
        self._audit.log_subscription_stopped(handle.kind.value, handle.push_count)
