"""Cluster controller: reconciler, persistence and kopf handlers."""

from arlon_ctl.controller.manager import ClusterManager, load_kube_config
from arlon_ctl.controller.reconciler import (
    ClusterReconciler,
    ReconcileCancelled,
    ReconcileResult,
)
from arlon_ctl.controller.store import ClusterStore, ClusterStoreError

__all__ = [
    "ClusterManager",
    "ClusterReconciler",
    "ClusterStore",
    "ClusterStoreError",
    "ReconcileCancelled",
    "ReconcileResult",
    "load_kube_config",
]
