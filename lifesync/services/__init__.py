"""Services package."""

from lifesync.services.auth import AuthProvider, StaticAuthProvider
from lifesync.services.remote import (
    AuthorizationError,
    InMemoryBackend,
    InMemoryRemoteService,
    LiveQuery,
    RecordNotFoundError,
    RemoteDataService,
    RemoteServiceError,
    RemoteUnavailableError,
    SnapshotPush,
)

__all__ = [
    # Authentication
    "AuthProvider",
    "StaticAuthProvider",
    # Remote data service
    "AuthorizationError",
    "InMemoryBackend",
    "InMemoryRemoteService",
    "LiveQuery",
    "RecordNotFoundError",
    "RemoteDataService",
    "RemoteServiceError",
    "RemoteUnavailableError",
    "SnapshotPush",
]
