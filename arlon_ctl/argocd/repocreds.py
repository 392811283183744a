"""Repository credentials from Argo CD's secret store.

Argo CD keeps repository registrations as labelled Secrets in its own
namespace.  ``repository`` secrets match a URL exactly; ``repo-creds``
secrets are credential templates that match any URL they prefix.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"
_LABEL_SELECTOR = f"{SECRET_TYPE_LABEL} in (repository,repo-creds)"


class RepoCredsError(Exception):
    """Credentials could not be resolved for a repository."""


@dataclass(frozen=True)
class RepoCreds:
    url: str
    username: str = ""
    password: str = field(default="", repr=False)
    ssh_private_key: str = field(default="", repr=False)

    @property
    def anonymous(self) -> bool:
        return not (self.username or self.password or self.ssh_private_key)


def _decode(data: Optional[Dict[str, str]], key: str) -> str:
    if not data or key not in data or data[key] is None:
        return ""
    return base64.b64decode(data[key]).decode("utf-8")


def _normalize_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()


def get_repo_creds(core_v1: Any, argocd_ns: str, repo_url: str) -> RepoCreds:
    """Resolve credentials for *repo_url*.

    An exact ``repository`` match wins over the longest ``repo-creds``
    prefix.  Raises :class:`RepoCredsError` if the repository is not
    registered in Argo CD or the secrets cannot be listed.
    """
    try:
        secrets = core_v1.list_namespaced_secret(
            argocd_ns, label_selector=_LABEL_SELECTOR,
        )
    except ApiException as exc:
        raise RepoCredsError(
            f"failed to list repository secrets in {argocd_ns}: {exc.reason}"
        ) from exc

    wanted = _normalize_url(repo_url)
    exact: Optional[RepoCreds] = None
    templates: List[RepoCreds] = []
    for secret in secrets.items:
        labels = secret.metadata.labels or {}
        creds = RepoCreds(
            url=_decode(secret.data, "url"),
            username=_decode(secret.data, "username"),
            password=_decode(secret.data, "password"),
            ssh_private_key=_decode(secret.data, "sshPrivateKey"),
        )
        if not creds.url:
            continue
        if labels.get(SECRET_TYPE_LABEL) == "repository":
            if _normalize_url(creds.url) == wanted:
                exact = creds
                break
        elif wanted.startswith(_normalize_url(creds.url)):
            templates.append(creds)

    if exact is not None:
        return RepoCreds(
            url=repo_url,
            username=exact.username,
            password=exact.password,
            ssh_private_key=exact.ssh_private_key,
        )
    if templates:
        best = max(templates, key=lambda c: len(c.url))
        logger.debug("Using credential template %s for %s", best.url, repo_url)
        return RepoCreds(
            url=repo_url,
            username=best.username,
            password=best.password,
            ssh_private_key=best.ssh_private_key,
        )
    raise RepoCredsError(f"repository {repo_url} is not registered in argocd")
