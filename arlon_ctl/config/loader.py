"""Controller configuration loading.

- :func:`load_config`: parse a YAML file into a :class:`ControllerConfig`
- :func:`apply_env_overrides`: ``ARLON_*`` environment variables win over the file
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from arlon_ctl.config.models import ConfigFile, ControllerConfig

logger = logging.getLogger(__name__)

#: Environment variable → config field.
ENV_OVERRIDES: Dict[str, str] = {
    "ARLON_ARGOCD_NAMESPACE": "argocd_namespace",
    "ARLON_NAMESPACE": "arlon_namespace",
    "ARLON_ARGOCD_SERVER": "argocd_server",
    "ARLON_ARGOCD_TOKEN": "argocd_token",
    "ARLON_ARGOCD_INSECURE": "argocd_insecure",
    "ARLON_RETRY_DELAY_SECONDS": "retry_delay_seconds",
    "ARLON_WORKERS": "workers",
    "ARLON_WATCH_NAMESPACE": "watch_namespace",
    "KUBECONFIG": "kubeconfig",
}


def load_config(
    path: Optional[str | Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ControllerConfig:
    """Load controller settings from *path* (if it exists) plus environment.

    A missing file is not an error; defaults apply.
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        else:
            logger.warning("Config file %s not found, using defaults", p)

    section = dict(raw.get("controller", {}) or {})
    section.update(apply_env_overrides(environ if environ is not None else os.environ))
    return ConfigFile(controller=ControllerConfig(**section)).controller


def apply_env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Return the config fields set through ``ARLON_*`` variables."""
    overrides: Dict[str, Any] = {}
    for var, field_name in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            overrides[field_name] = value
    return overrides


def write_config(cfg: ControllerConfig, path: str | Path) -> None:
    """Serialise *cfg* back to YAML (token omitted)."""
    data = {"controller": cfg.model_dump(mode="json", exclude={"argocd_token"})}
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=True)
