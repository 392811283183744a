"""Cluster template validation.

A usable cluster template is a directory in a git repository that holds

* a ``kustomization.yaml``, and
* exactly one manifest file declaring exactly one Cluster API
  ``Cluster`` (``cluster.x-k8s.io``) with no namespace set (the
  workload application chooses the namespace).

The name of that ``Cluster`` is the *inner cluster name*.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import git
import yaml

from arlon_ctl.gitutils.repo import GitError, clone_repo, remove_clone

logger = logging.getLogger(__name__)

CAPI_GROUP = "cluster.x-k8s.io"
KUSTOMIZATION_FILES = ("kustomization.yaml", "kustomization.yml", "Kustomization")
IGNORED_FILES = frozenset(KUSTOMIZATION_FILES) | {"configurations.yaml"}


class ValidationError(Exception):
    """The repository, revision or path is not a usable cluster template."""


def _is_capi_cluster(doc: Any) -> bool:
    return (
        isinstance(doc, dict)
        and doc.get("kind") == "Cluster"
        and str(doc.get("apiVersion", "")).startswith(f"{CAPI_GROUP}/")
    )


def find_manifest_file(directory: Path) -> Path:
    """Return the single manifest file in *directory*."""
    if not any((directory / name).is_file() for name in KUSTOMIZATION_FILES):
        raise ValidationError("kustomization.yaml not found")
    candidates: List[Path] = sorted(
        p for p in directory.iterdir()
        if p.is_file()
        and p.suffix in (".yaml", ".yml")
        and p.name not in IGNORED_FILES
    )
    if not candidates:
        raise ValidationError("no manifest file found")
    if len(candidates) > 1:
        names = ", ".join(p.name for p in candidates)
        raise ValidationError(f"multiple manifest files found: {names}")
    return candidates[0]


def inner_cluster_name_from_manifest(text: str) -> str:
    """Extract the ``Cluster`` name from a multi-document manifest."""
    try:
        docs = [d for d in yaml.safe_load_all(text) if d]
    except yaml.YAMLError as exc:
        raise ValidationError(f"failed to parse manifest: {exc}") from exc

    clusters: List[Dict[str, Any]] = [d for d in docs if _is_capi_cluster(d)]
    if not clusters:
        raise ValidationError("no cluster resource found in manifest")
    if len(clusters) > 1:
        raise ValidationError("more than one cluster resource found in manifest")
    metadata = clusters[0].get("metadata") or {}
    if metadata.get("namespace"):
        raise ValidationError(
            "cluster resource must not specify a namespace "
            f"(found {metadata['namespace']})"
        )
    name = metadata.get("name")
    if not name:
        raise ValidationError("cluster resource has no name")
    return str(name)


def validate_dir(directory: Path) -> str:
    """Validate a checked-out template directory and return the inner cluster name."""
    if not directory.is_dir():
        raise ValidationError(f"path {directory.name} not found in repository")
    manifest = find_manifest_file(directory)
    return inner_cluster_name_from_manifest(manifest.read_text(encoding="utf-8"))


def validate_git_dir(
    creds,
    url: str,
    revision: str,
    path: str,
    *,
    tmp_root: Optional[str] = None,
) -> str:
    """Clone *url*, check out *revision* and validate *path*.

    Returns the inner cluster name; raises :class:`ValidationError`.
    """
    try:
        repo, tmp_dir, auth = clone_repo(creds, url, "", tmp_root=tmp_root)
    except GitError as exc:
        raise ValidationError(str(exc)) from exc
    try:
        if revision:
            try:
                repo.git.checkout(revision)
            except git.GitCommandError as exc:
                raise ValidationError(f"invalid revision {revision}") from exc
        directory = Path(tmp_dir) / path.strip("/")
        name = validate_dir(directory)
        logger.info("Template %s@%s:%s validated, cluster %s", url, revision, path, name)
        return name
    finally:
        repo.close()
        remove_clone(tmp_dir, auth)
