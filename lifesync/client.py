"""
LifeSync Client

This module ties the sync components together and is the only surface
the presentation layer talks to:
1. Reads: snapshot / subscribe / view / project
2. Live queries: watch / unwatch
3. Mutations: create / update / delete
4. Session teardown: sign_out

DESIGN DECISION: There is no global client. Every collaborator (remote
service, auth provider, settings) is passed in, so tests and other
devices can be wired against the in-memory backend.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from lifesync.audit import AuditLogger, AuditSink
from lifesync.config import SyncSettings, get_settings
from lifesync.models.entities import KindLike
from lifesync.models.results import MutationResult
from lifesync.services.auth import AuthProvider, StaticAuthProvider
from lifesync.services.remote import InMemoryRemoteService, RemoteDataService
from lifesync.store import Listener, RecordStore, Snapshot, Subscription
from lifesync.sync import (
    LiveQueryHandle,
    MutationCoordinator,
    SubscriptionReconciler,
    SubscriptionStatus,
)
from lifesync.sync.reconciler import ErrorHandler
from lifesync.views import LiveView, ViewSpec, project


class LifeSyncClient:
    """
    One signed-in session of the sync layer.

    After sign_out() the session is torn down: live queries are released,
    the store is closed, and late mutation results are still returned but
    no longer touch local state.
    """

    def __init__(
        self,
        remote: RemoteDataService,
        auth: AuthProvider,
        store: Optional[RecordStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
        reconciler: Optional[SubscriptionReconciler] = None,
        coordinator: Optional[MutationCoordinator] = None,
    ):
        self._settings = settings or get_settings().sync
        self._auth = auth
        self._audit = audit_logger or AuditLogger()
        self.store = store or RecordStore()
        self.reconciler = reconciler or SubscriptionReconciler(
            remote, self.store, audit_logger=self._audit, settings=self._settings,
        )
        self.coordinator = coordinator or MutationCoordinator(
            remote, self.store, audit_logger=self._audit, settings=self._settings,
        )
        self._views: list[LiveView] = []

    @property
    def identity(self) -> Optional[str]:
        return self._auth.current_identity()

    @property
    def signed_out(self) -> bool:
        return self.store.closed

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def snapshot(self, kind: KindLike) -> Snapshot:
        return self.store.snapshot(kind)

    def subscribe(self, kind: KindLike, listener: Listener) -> Subscription:
        return self.store.subscribe(kind, listener)

    def project(self, kind: KindLike, view: Optional[ViewSpec] = None) -> Snapshot:
        return project(self.store.snapshot(kind), view)

    def view(self, kind: KindLike, view: Optional[ViewSpec] = None) -> LiveView:
        live_view = LiveView(self.store, kind, view)
        self._views.append(live_view)
        return live_view

    # -------------------------------------------------------------------------
    # Live queries
    # -------------------------------------------------------------------------

    async def watch(
        self,
        kind: KindLike,
        on_error: Optional[ErrorHandler] = None,
    ) -> LiveQueryHandle:
        """Start syncing a kind (see SubscriptionReconciler.subscribe)."""
        return await self.reconciler.subscribe(kind, on_error=on_error)

    def unwatch(self, kind: KindLike) -> None:
        self.reconciler.unsubscribe(kind)

    def status(self, kind: KindLike) -> Optional[SubscriptionStatus]:
        handle = self.reconciler.handle(kind)
        return handle.status if handle else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(
        self,
        kind: KindLike,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        return await self.coordinator.create(kind, fields, correlation_id=correlation_id)

    async def update(
        self,
        kind: KindLike,
        record_id: str,
        fields: dict[str, Any],
        optimistic: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        return await self.coordinator.update(
            kind, record_id, fields, optimistic=optimistic, correlation_id=correlation_id,
        )

    async def delete(
        self,
        kind: KindLike,
        record_id: str,
        optimistic: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        return await self.coordinator.delete(
            kind, record_id, optimistic=optimistic, correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def sign_out(self) -> None:
        """
        Tear the session down and sign out.

        Safe to call more than once.
        """
        identity = self.identity
        released = self.reconciler.unsubscribe_all()
        for live_view in self._views:
            live_view.close()
        self._views.clear()
        already_closed = self.store.closed
        self.store.close()

        if not already_closed:
            self._audit.log_signed_out(identity, [kind.value for kind in released])
            await self._auth.sign_out()


def create_client(
    remote: Optional[RemoteDataService] = None,
    auth: Optional[AuthProvider] = None,
    settings: Optional[SyncSettings] = None,
    audit_sink: Optional[AuditSink] = None,
) -> LifeSyncClient:
    """
    Factory function to create a fully wired client.

    Args:
        remote: Data service handle. Defaults to an in-memory service
                scoped to `auth`, for local use.
        auth: Authentication collaborator. Defaults to a fixed local identity.
        settings: Sync settings. Defaults to environment configuration.
        audit_sink: Optional receiver of every audit event.
    """
    settings = settings or get_settings().sync
    logging.getLogger("lifesync").setLevel(settings.log_level)

    auth = auth or StaticAuthProvider("local-user")
    remote = remote or InMemoryRemoteService(auth=auth)

    return LifeSyncClient(
        remote=remote,
        auth=auth,
        audit_logger=AuditLogger(sink=audit_sink),
        settings=settings,
    )
