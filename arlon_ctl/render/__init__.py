"""Manifest materialisation (embedded chart copy + bundle templates)."""

from arlon_ctl.render.renderer import (
    BUNDLE_APP_TEMPLATE,
    CLUSTER_NAME_PLACEHOLDER,
    REQUIRED_KEYS,
    BundleRenderError,
    copy_manifests,
    process_bundles,
    render_template,
)

__all__ = [
    "BUNDLE_APP_TEMPLATE",
    "CLUSTER_NAME_PLACEHOLDER",
    "REQUIRED_KEYS",
    "BundleRenderError",
    "copy_manifests",
    "process_bundles",
    "render_template",
]
