"""Resource models (Cluster, Application, Profile, Bundle)."""

from arlon_ctl.api.models import (
    API_GROUP,
    API_VERSION,
    CLUSTER_FINALIZER,
    CLUSTER_PLURAL,
    PROFILE_PLURAL,
    Application,
    ApplicationDestination,
    ApplicationSource,
    AutoscalerSpec,
    Bundle,
    BundleType,
    Cluster,
    ClusterSpec,
    ClusterState,
    ClusterStatus,
    HelmParameter,
    ObjectMeta,
    Profile,
    RepoSpec,
)

__all__ = [
    "API_GROUP",
    "API_VERSION",
    "CLUSTER_FINALIZER",
    "CLUSTER_PLURAL",
    "PROFILE_PLURAL",
    "Application",
    "ApplicationDestination",
    "ApplicationSource",
    "AutoscalerSpec",
    "Bundle",
    "BundleType",
    "Cluster",
    "ClusterSpec",
    "ClusterState",
    "ClusterStatus",
    "HelmParameter",
    "ObjectMeta",
    "Profile",
    "RepoSpec",
]
