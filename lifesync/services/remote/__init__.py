"""
Remote Data Service Package

Provides the abstract contract of the managed data service and an
in-memory implementation of it.
"""

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
from lifesync.services.remote.memory import (
    InMemoryBackend,
    InMemoryLiveQuery,
    InMemoryRemoteService,
)

__all__ = [
    # Interfaces
    "ErrorCallback",
    "LiveQuery",
    "RemoteDataService",
    "SnapshotCallback",
    "SnapshotPush",
    # Exceptions
    "AuthorizationError",
    "RecordNotFoundError",
    "RemoteServiceError",
    "RemoteUnavailableError",
    # In-memory implementation
    "InMemoryBackend",
    "InMemoryLiveQuery",
    "InMemoryRemoteService",
]
