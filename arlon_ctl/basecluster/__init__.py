"""Cluster template validation."""

from arlon_ctl.basecluster.validate import (
    ValidationError,
    find_manifest_file,
    inner_cluster_name_from_manifest,
    validate_dir,
    validate_git_dir,
)

__all__ = [
    "ValidationError",
    "find_manifest_file",
    "inner_cluster_name_from_manifest",
    "validate_dir",
    "validate_git_dir",
]
