"""Construction of the two applications every Cluster owns.

* **platform app** ``<cluster>-arlon`` deploys arlon's own Helm chart
  for the cluster (kubeconfig plumbing, optional cluster autoscaler).
* **workload app** ``<cluster>`` deploys the cluster template itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from arlon_ctl.api.models import (
    Application,
    ApplicationDestination,
    ApplicationSource,
    HelmParameter,
    RepoSpec,
)
from arlon_ctl.argocd.client import ApplicationClient

logger = logging.getLogger(__name__)

PLATFORM_APP_SUFFIX = "-arlon"

LABEL_MANAGED_BY = "managed-by"
LABEL_ARLON_TYPE = "arlon-type"
LABEL_CLUSTER_NAME = "arlon.io/cluster-name"
ANNOTATION_INNER_CLUSTER_NAME = "arlon.io/inner-cluster-name"


def platform_app_name(cluster_name: str) -> str:
    return f"{cluster_name}{PLATFORM_APP_SUFFIX}"


def build_platform_app(
    cluster_name: str,
    chart: RepoSpec,
    *,
    argocd_ns: str,
    arlon_ns: str,
    inner_cluster_name: str = "",
    cas_mgmt_cluster_host: str = "",
    cas_enabled: bool = False,
) -> Application:
    """Return the ``<cluster>-arlon`` application for *chart*.

    Autoscaler parameters are only meaningful when *cas_enabled*; the
    inner cluster name then lets the autoscaler find the CAPI cluster.
    """
    params = [
        HelmParameter(name="global.clusterName", value=cluster_name),
        HelmParameter(name="global.arlonNamespace", value=arlon_ns),
        HelmParameter(name="global.argocdNamespace", value=argocd_ns),
        HelmParameter(name="global.casEnabled", value="true" if cas_enabled else "false"),
    ]
    if cas_enabled:
        params.append(HelmParameter(name="global.innerClusterName", value=inner_cluster_name))
        params.append(HelmParameter(name="global.casMgmtClusterHost", value=cas_mgmt_cluster_host))

    return Application(
        name=platform_app_name(cluster_name),
        namespace=argocd_ns,
        labels={
            LABEL_MANAGED_BY: "arlon",
            LABEL_ARLON_TYPE: "arlon-app",
            LABEL_CLUSTER_NAME: cluster_name,
        },
        source=ApplicationSource(
            repo_url=chart.url,
            path=chart.path,
            target_revision=chart.revision,
            helm_parameters=params,
        ),
        destination=ApplicationDestination(namespace=cluster_name),
        finalizers=["resources-finalizer.argocd.argoproj.io"],
    )


def build_cluster_app(
    cluster_name: str,
    inner_cluster_name: str,
    template: RepoSpec,
    *,
    argocd_ns: str,
) -> Application:
    """Return the workload application that materialises the cluster template."""
    return Application(
        name=cluster_name,
        namespace=argocd_ns,
        labels={
            LABEL_MANAGED_BY: "arlon",
            LABEL_ARLON_TYPE: "cluster-app",
            LABEL_CLUSTER_NAME: cluster_name,
        },
        annotations={ANNOTATION_INNER_CLUSTER_NAME: inner_cluster_name},
        source=ApplicationSource(
            repo_url=template.url,
            path=template.path,
            target_revision=template.revision,
            kustomize_name_prefix=f"{cluster_name}-",
        ),
        destination=ApplicationDestination(namespace=cluster_name),
        finalizers=["resources-finalizer.argocd.argoproj.io"],
    )


def create_platform_app(apps: ApplicationClient, app: Application) -> Dict[str, Any]:
    logger.info("Creating platform application %s", app.name)
    return apps.create(app)


def create_cluster_app(apps: ApplicationClient, app: Application) -> Dict[str, Any]:
    logger.info("Creating cluster application %s", app.name)
    return apps.create(app)
