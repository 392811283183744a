"""Resource models for the ``core.arlon.io/v1`` API group.

Every model round-trips to the Kubernetes JSON representation using the
CRD's camelCase field names::

    apiVersion: core.arlon.io/v1
    kind: Cluster
    metadata:
      name: foo
      namespace: arlon
      finalizers: [cluster.core.arlon.io]
    spec:
      clusterTemplate: {url: ..., path: ..., revision: ...}
      arlonHelmChart: {url: ..., path: ..., revision: ...}   # optional
      autoscaler: {mgmtClusterHost: ...}                      # optional
    status:
      state: initializing
      message: cluster template validation successful
      innerClusterName: capi-foo
      observedGeneration: 1
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

API_GROUP = "core.arlon.io"
API_VERSION = "v1"
CLUSTER_PLURAL = "clusters"
PROFILE_PLURAL = "profiles"

#: Finalizer guarding cleanup of a Cluster's delivery-engine objects.
CLUSTER_FINALIZER = "cluster.core.arlon.io"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# ClusterState
# ---------------------------------------------------------------------------


class ClusterState(str, Enum):
    """Values of ``status.state``."""

    UNSET = ""
    INITIALIZING = "initializing"
    RETRYING = "retrying"
    CREATED = "created"


# ---------------------------------------------------------------------------
# Spec building blocks
# ---------------------------------------------------------------------------


class RepoSpec(_Model):
    """A location in a git repository: URL, directory and revision."""

    url: str = ""
    path: str = ""
    revision: str = ""


class AutoscalerSpec(_Model):
    """Cluster autoscaler settings for gen2 clusters."""

    mgmt_cluster_host: str = Field(default="", alias="mgmtClusterHost")


class ClusterSpec(_Model):
    cluster_template: RepoSpec = Field(
        default_factory=RepoSpec, alias="clusterTemplate",
    )
    arlon_helm_chart: Optional[RepoSpec] = Field(
        default=None, alias="arlonHelmChart",
    )
    autoscaler: Optional[AutoscalerSpec] = None


class ClusterStatus(_Model):
    state: str = ""
    message: str = ""
    inner_cluster_name: str = Field(default="", alias="innerClusterName")
    observed_generation: int = Field(default=0, alias="observedGeneration")


class ObjectMeta(_Model):
    """The subset of Kubernetes ``metadata`` the controller reads or writes."""

    name: str
    namespace: str = ""
    generation: int = 0
    resource_version: str = Field(default="", alias="resourceVersion")
    uid: str = ""
    finalizers: List[str] = Field(default_factory=list)
    deletion_timestamp: Optional[str] = Field(
        default=None, alias="deletionTimestamp",
    )
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Cluster
# ---------------------------------------------------------------------------


class Cluster(_Model):
    """Desired-state record for one managed cluster."""

    api_version: str = Field(
        default=f"{API_GROUP}/{API_VERSION}", alias="apiVersion",
    )
    kind: str = "Cluster"
    metadata: ObjectMeta
    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """``namespace/name`` identity used in log lines and errors."""
        return f"{self.metadata.namespace}/{self.metadata.name}"

    def is_being_deleted(self) -> bool:
        return bool(self.metadata.deletion_timestamp)

    def has_finalizer(self, finalizer: str = CLUSTER_FINALIZER) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str = CLUSTER_FINALIZER) -> None:
        if finalizer not in self.metadata.finalizers:
            self.metadata.finalizers.append(finalizer)

    def remove_finalizer(self, finalizer: str = CLUSTER_FINALIZER) -> None:
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]

    @classmethod
    def from_k8s(cls, obj: Dict[str, Any]) -> "Cluster":
        """Build from a custom-object dict as returned by the API server."""
        return cls.model_validate(obj)

    def to_k8s(self) -> Dict[str, Any]:
        """Serialise for the API server (camelCase, ``None`` dropped)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Bundle / Profile
# ---------------------------------------------------------------------------


class BundleType(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class Bundle(_Model):
    """A unit of deployable content referenced by a profile.

    Static bundles carry their manifests inline in *data*; dynamic
    bundles point at a directory in another git repository.
    """

    name: str
    type: BundleType = BundleType.STATIC
    description: str = ""
    data: Optional[str] = None
    repo_url: str = Field(default="", alias="repoUrl")
    repo_path: str = Field(default="", alias="repoPath")
    repo_revision: str = Field(default="HEAD", alias="repoRevision")


class Profile(_Model):
    """A named selection of bundles."""

    name: str
    namespace: str = ""
    description: str = ""
    bundles: List[str] = Field(default_factory=list)
    repo_url: str = Field(default="", alias="repoUrl")
    repo_path: str = Field(default="", alias="repoPath")
    repo_branch: str = Field(default="", alias="repoBranch")


# ---------------------------------------------------------------------------
# Application (Argo CD)
# ---------------------------------------------------------------------------


class HelmParameter(_Model):
    name: str
    value: str


class ApplicationSource(_Model):
    repo_url: str = Field(alias="repoURL")
    path: str = ""
    target_revision: str = Field(default="HEAD", alias="targetRevision")
    helm_parameters: List[HelmParameter] = Field(default_factory=list)
    kustomize_name_prefix: str = ""


class ApplicationDestination(_Model):
    server: str = "https://kubernetes.default.svc"
    name: str = ""
    namespace: str = ""


class Application(_Model):
    """An Argo CD ``Application`` the controller or renderer produces."""

    name: str
    namespace: str = "argocd"
    project: str = "default"
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    source: ApplicationSource
    destination: ApplicationDestination = Field(
        default_factory=ApplicationDestination,
    )
    automated_sync: bool = True
    prune: bool = True
    create_namespace: bool = True
    finalizers: List[str] = Field(default_factory=list)

    def to_argocd(self) -> Dict[str, Any]:
        """Render the ``argoproj.io/v1alpha1`` manifest Argo CD accepts."""
        source: Dict[str, Any] = {
            "repoURL": self.source.repo_url,
            "path": self.source.path,
            "targetRevision": self.source.target_revision,
        }
        if self.source.helm_parameters:
            source["helm"] = {
                "parameters": [
                    {"name": p.name, "value": p.value}
                    for p in self.source.helm_parameters
                ],
            }
        if self.source.kustomize_name_prefix:
            source["kustomize"] = {"namePrefix": self.source.kustomize_name_prefix}

        destination: Dict[str, Any] = {"namespace": self.destination.namespace}
        if self.destination.name:
            destination["name"] = self.destination.name
        else:
            destination["server"] = self.destination.server

        spec: Dict[str, Any] = {
            "project": self.project,
            "source": source,
            "destination": destination,
        }
        sync_policy: Dict[str, Any] = {}
        if self.automated_sync:
            sync_policy["automated"] = {"prune": self.prune}
        if self.create_namespace:
            sync_policy["syncOptions"] = ["CreateNamespace=true"]
        if sync_policy:
            spec["syncPolicy"] = sync_policy

        metadata: Dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)

        return {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "Application",
            "metadata": metadata,
            "spec": spec,
        }
