"""Synchronization package: live-query reconciliation and mutations."""

from lifesync.sync.coordinator import MutationCoordinator
from lifesync.sync.policies import apply_create_defaults, apply_status_policy
from lifesync.sync.reconciler import (
    LiveQueryHandle,
    SubscriptionReconciler,
    SubscriptionStatus,
)

__all__ = [
    "LiveQueryHandle",
    "MutationCoordinator",
    "SubscriptionReconciler",
    "SubscriptionStatus",
    "apply_create_defaults",
    "apply_status_policy",
]
