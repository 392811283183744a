"""Profiles: bundle lookup and materialization into git."""

from arlon_ctl.profile.bundles import (
    BundleLookupError,
    bundle_from_secret,
    get_bundles_from_profile,
)
from arlon_ctl.profile.git import ProfileSyncError, create_in_git, embedded_manifests
from arlon_ctl.profile.profiles import (
    ProfileLookupError,
    delete_profile,
    load_profile,
    profile_from_configmap,
)

__all__ = [
    "BundleLookupError",
    "ProfileLookupError",
    "ProfileSyncError",
    "bundle_from_secret",
    "create_in_git",
    "delete_profile",
    "embedded_manifests",
    "get_bundles_from_profile",
    "load_profile",
    "profile_from_configmap",
]
