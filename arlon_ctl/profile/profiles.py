"""Profile lookup and deletion."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes.client.rest import ApiException

from arlon_ctl.api.models import API_GROUP, API_VERSION, PROFILE_PLURAL, Profile

logger = logging.getLogger(__name__)

# ConfigMap keys of a profile
KEY_BUNDLES = "bundles"
KEY_DESCRIPTION = "description"
KEY_REPO_URL = "repo-url"
KEY_REPO_PATH = "repo-path"
KEY_REPO_BRANCH = "repo-branch"


class ProfileLookupError(Exception):
    pass


def profile_from_configmap(cm: Any) -> Profile:
    data = cm.data or {}
    bundles = [b.strip() for b in data.get(KEY_BUNDLES, "").split(",") if b.strip()]
    return Profile(
        name=cm.metadata.name,
        namespace=cm.metadata.namespace or "",
        description=data.get(KEY_DESCRIPTION, ""),
        bundles=bundles,
        repo_url=data.get(KEY_REPO_URL, ""),
        repo_path=data.get(KEY_REPO_PATH, ""),
        repo_branch=data.get(KEY_REPO_BRANCH, ""),
    )


def load_profile(core_v1: Any, name: str, namespace: str) -> Profile:
    """Read the profile ConfigMap *name* from *namespace*."""
    try:
        cm = core_v1.read_namespaced_config_map(name, namespace)
    except ApiException as exc:
        raise ProfileLookupError(
            f"failed to get profile {namespace}/{name}: {exc.reason}"
        ) from exc
    return profile_from_configmap(cm)


def delete_profile(custom_api: Any, namespace: str, name: str) -> None:
    """Delete the Profile custom resource *namespace/name*.

    Errors from the API server propagate unchanged.
    """
    custom_api.delete_namespaced_custom_object(
        API_GROUP, API_VERSION, namespace, PROFILE_PLURAL, name,
    )
    logger.info("Deleted profile %s/%s", namespace, name)
