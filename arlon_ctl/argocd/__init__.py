"""Argo CD adapter: application client, app builders, repository credentials."""

from arlon_ctl.argocd.apps import (
    build_cluster_app,
    build_platform_app,
    create_cluster_app,
    create_platform_app,
    platform_app_name,
)
from arlon_ctl.argocd.client import (
    GRPC_NOT_FOUND,
    ApplicationClient,
    ApplicationNotFoundError,
    ArgocdClient,
    ArgocdError,
    ArgocdStatusError,
    ArgocdStatusMissingError,
    find_application,
)
from arlon_ctl.argocd.repocreds import RepoCreds, RepoCredsError, get_repo_creds

__all__ = [
    "GRPC_NOT_FOUND",
    "ApplicationClient",
    "ApplicationNotFoundError",
    "ArgocdClient",
    "ArgocdError",
    "ArgocdStatusError",
    "ArgocdStatusMissingError",
    "RepoCreds",
    "RepoCredsError",
    "build_cluster_app",
    "build_platform_app",
    "create_cluster_app",
    "create_platform_app",
    "find_application",
    "get_repo_creds",
    "platform_app_name",
]
