"""Pydantic models for controller configuration.

Structure of the YAML file::

    controller:
      argocd_namespace: argocd
      arlon_namespace: arlon
      argocd_server: https://argocd-server.argocd.svc
      argocd_token: <token>
      retry_delay_seconds: 10
      default_arlon_chart:
        url: https://github.com/arlonproj/arlon.git
        path: pkg/cluster/manifests
        revision: v0.10.0
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from arlon_ctl.api.models import RepoSpec

#: Git location of the Helm chart for a cluster's arlon app when the
#: Cluster does not override it.
DEFAULT_ARLON_CHART = RepoSpec(
    url="https://github.com/arlonproj/arlon.git",
    path="pkg/cluster/manifests",
    revision="v0.10.0",
)


class ControllerConfig(BaseModel):
    """Settings injected into the reconciler and the manager."""

    argocd_namespace: str = "argocd"
    arlon_namespace: str = "arlon"
    argocd_server: str = "https://argocd-server.argocd.svc"
    argocd_token: str = ""
    argocd_insecure: bool = False
    argocd_timeout_seconds: float = 30.0
    default_arlon_chart: RepoSpec = Field(
        default_factory=lambda: DEFAULT_ARLON_CHART.model_copy(),
    )
    retry_delay_seconds: float = 10.0
    settle_delay_seconds: float = 2.0
    workers: int = 2
    watch_namespace: Optional[str] = None
    kubeconfig: Optional[str] = None

    @field_validator("retry_delay_seconds", "settle_delay_seconds")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delay must not be negative")
        return v

    @field_validator("workers")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v


class ConfigFile(BaseModel):
    """Root model wrapping the ``controller:`` key."""

    controller: ControllerConfig = Field(default_factory=ControllerConfig)
