"""Bundle lookup.

Bundles live as Secrets in the arlon namespace, labelled
``arlon-type=bundle``.  The manifest content of a static bundle is the
``data`` key; a dynamic bundle points at another repository through
annotations.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List

from kubernetes.client.rest import ApiException

from arlon_ctl.api.models import Bundle, BundleType, Profile

logger = logging.getLogger(__name__)

LABEL_ARLON_TYPE = "arlon-type"
LABEL_BUNDLE_TYPE = "bundle-type"
ANNOTATION_DESCRIPTION = "arlon.io/description"
ANNOTATION_REPO_URL = "arlon.io/repo-url"
ANNOTATION_REPO_PATH = "arlon.io/repo-path"
ANNOTATION_REPO_REVISION = "arlon.io/repo-revision"
DATA_KEY = "data"


class BundleLookupError(Exception):
    """A bundle referenced by a profile could not be loaded."""


def bundle_from_secret(secret: Any) -> Bundle:
    """Convert a bundle Secret (``V1Secret``) into a :class:`Bundle`."""
    meta = secret.metadata
    labels: Dict[str, str] = meta.labels or {}
    annotations: Dict[str, str] = meta.annotations or {}
    if labels.get(LABEL_ARLON_TYPE) != "bundle":
        raise BundleLookupError(f"secret {meta.name} is not a bundle")

    raw_type = labels.get(LABEL_BUNDLE_TYPE, BundleType.STATIC.value)
    try:
        btype = BundleType(raw_type)
    except ValueError as exc:
        raise BundleLookupError(f"bundle {meta.name} has unknown type {raw_type}") from exc

    data = None
    encoded = (secret.data or {}).get(DATA_KEY)
    if encoded:
        data = base64.b64decode(encoded).decode("utf-8")
    return Bundle(
        name=meta.name,
        type=btype,
        description=annotations.get(ANNOTATION_DESCRIPTION, ""),
        data=data,
        repo_url=annotations.get(ANNOTATION_REPO_URL, ""),
        repo_path=annotations.get(ANNOTATION_REPO_PATH, ""),
        repo_revision=annotations.get(ANNOTATION_REPO_REVISION, "HEAD") or "HEAD",
    )


def get_bundles_from_profile(profile: Profile, core_v1: Any, arlon_ns: str) -> List[Bundle]:
    """Load every bundle the profile names, in profile order."""
    bundles: List[Bundle] = []
    for name in profile.bundles:
        try:
            secret = core_v1.read_namespaced_secret(name, arlon_ns)
        except ApiException as exc:
            raise BundleLookupError(f"failed to get bundle {name}: {exc.reason}") from exc
        bundles.append(bundle_from_secret(secret))
    logger.debug("Profile %s resolves to %d bundle(s)", profile.name, len(bundles))
    return bundles
