"""Persistence of ``Cluster`` records through the Kubernetes API.

Writes are JSON merge patches carrying only the fields the controller
owns, guarded by the object's ``resourceVersion``: a stale write fails
with a conflict instead of clobbering a concurrent change, and the retry
starts from fresh state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from kubernetes.client.rest import ApiException

from arlon_ctl.api.models import API_GROUP, API_VERSION, CLUSTER_PLURAL, Cluster

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class ClusterStoreError(Exception):
    """A read or write of a Cluster failed; the pass should be retried."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def conflict(self) -> bool:
        return self.status == 409


class ClusterStore:
    """Get / update / update-status for ``clusters.core.arlon.io``."""

    def __init__(self, custom_api: Any) -> None:
        self.api = custom_api

    def get(self, namespace: str, name: str) -> Optional[Cluster]:
        """Return the Cluster, or ``None`` if it no longer exists."""
        try:
            obj = self.api.get_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, CLUSTER_PLURAL, name,
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise ClusterStoreError(
                f"unable to get cluster {namespace}/{name}: {exc.reason}",
                status=exc.status,
            ) from exc
        return Cluster.from_k8s(obj)

    def update(self, cluster: Cluster) -> Cluster:
        """Write the finalizers as a merge patch.

        Only ``metadata.finalizers`` is sent, so fields the model does not
        declare (owner references, extra spec fields) are left untouched.
        """
        body = {"metadata": {"finalizers": list(cluster.metadata.finalizers)}}
        try:
            obj = self.api.patch_namespaced_custom_object(
                API_GROUP, API_VERSION, cluster.namespace, CLUSTER_PLURAL,
                cluster.name, self._guarded(cluster, body),
                _content_type=MERGE_PATCH,
            )
        except ApiException as exc:
            raise ClusterStoreError(
                f"unable to update cluster {cluster.key}: {exc.reason}",
                status=exc.status,
            ) from exc
        self._absorb(cluster, obj)
        return cluster

    def update_status(self, cluster: Cluster) -> Cluster:
        """Merge-patch the status sub-resource."""
        body = {"status": cluster.to_k8s()["status"]}
        try:
            obj = self.api.patch_namespaced_custom_object_status(
                API_GROUP, API_VERSION, cluster.namespace, CLUSTER_PLURAL,
                cluster.name, self._guarded(cluster, body),
                _content_type=MERGE_PATCH,
            )
        except ApiException as exc:
            raise ClusterStoreError(
                f"unable to update status of cluster {cluster.key}: {exc.reason}",
                status=exc.status,
            ) from exc
        self._absorb(cluster, obj)
        return cluster

    @staticmethod
    def _guarded(cluster: Cluster, body: Dict[str, Any]) -> Dict[str, Any]:
        # resourceVersion in a merge patch is a precondition
        rv = cluster.metadata.resource_version
        if rv:
            body.setdefault("metadata", {})["resourceVersion"] = rv
        return body

    @staticmethod
    def _absorb(cluster: Cluster, obj: Any) -> None:
        # carry the new resourceVersion into the next write
        if isinstance(obj, dict):
            rv = (obj.get("metadata") or {}).get("resourceVersion")
            if rv:
                cluster.metadata.resource_version = rv
