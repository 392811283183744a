"""Controller configuration loading and validation."""

from arlon_ctl.config.loader import (
    ENV_OVERRIDES,
    apply_env_overrides,
    load_config,
    write_config,
)
from arlon_ctl.config.models import (
    DEFAULT_ARLON_CHART,
    ConfigFile,
    ControllerConfig,
)

__all__ = [
    "DEFAULT_ARLON_CHART",
    "ENV_OVERRIDES",
    "ConfigFile",
    "ControllerConfig",
    "apply_env_overrides",
    "load_config",
    "write_config",
]
