"""Materialize a profile into a git repository.

The flow clones the target branch, lays down the embedded Helm chart
skeleton, renders one application template per bundle, and pushes the
result only when the tree changed.  Each stage failure raises
:class:`ProfileSyncError` naming the stage; nothing is pushed after a
failure; the working tree of a failed run is left on disk.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from importlib import resources
from typing import Any, Dict, Tuple

from arlon_ctl.api.models import Profile
from arlon_ctl.argocd.repocreds import get_repo_creds
from arlon_ctl.gitutils import repo as gitrepo
from arlon_ctl.profile.bundles import get_bundles_from_profile
from arlon_ctl.render.renderer import (
    CLUSTER_NAME_PLACEHOLDER,
    copy_manifests,
    process_bundles,
)

logger = logging.getLogger(__name__)

COMMIT_MESSAGE = "arlon automation: update profile"


class ProfileSyncError(Exception):
    """A stage of the profile flow failed."""


_locks_guard = threading.Lock()
_branch_locks: Dict[Tuple[str, str], threading.Lock] = {}


def _branch_lock(repo_url: str, branch: str) -> threading.Lock:
    with _locks_guard:
        return _branch_locks.setdefault((repo_url, branch), threading.Lock())


def embedded_manifests():
    """The chart skeleton shipped inside the package."""
    return resources.files("arlon_ctl.profile").joinpath("manifests")


def create_in_git(
    core_v1: Any,
    profile: Profile,
    argocd_ns: str,
    arlon_ns: str,
    repo_url: str,
    repo_path: str,
    repo_branch: str,
) -> bool:
    """Write *profile* to ``repo_url@repo_branch:repo_path``.

    Returns ``True`` when a commit was pushed, ``False`` when the tree
    was already up to date.
    """
    with _branch_lock(repo_url, repo_branch):
        return _create_in_git(
            core_v1, profile, argocd_ns, arlon_ns, repo_url, repo_path, repo_branch,
        )


def _create_in_git(core_v1, profile, argocd_ns, arlon_ns, repo_url, repo_path, repo_branch):
    try:
        bundles = get_bundles_from_profile(profile, core_v1, arlon_ns)
    except Exception as exc:
        raise ProfileSyncError(f"failed to get bundles: {exc}") from exc

    try:
        creds = get_repo_creds(core_v1, argocd_ns, repo_url)
        repo, tmp_dir, auth = gitrepo.clone_repo(creds, repo_url, repo_branch)
    except Exception as exc:
        raise ProfileSyncError(f"failed to clone repo: {exc}") from exc

    try:
        pushed = _materialize(repo, tmp_dir, auth, bundles, argocd_ns, repo_url, repo_path, repo_branch)
    except ProfileSyncError:
        # kept for inspection; never pushed
        logger.warning("working tree left at %s", tmp_dir)
        gitrepo.remove_clone(tmp_dir, auth, keep_tree=True)
        raise
    finally:
        repo.close()
    gitrepo.remove_clone(tmp_dir, auth)
    return pushed


def _materialize(repo, tmp_dir, auth, bundles, argocd_ns, repo_url, repo_path, repo_branch) -> bool:
    try:
        wt = gitrepo.worktree(repo)
    except gitrepo.GitError as exc:
        raise ProfileSyncError(f"failed to get repo worktree: {exc}") from exc

    try:
        copy_manifests(wt, embedded_manifests(), ".", repo_path)
    except OSError as exc:
        raise ProfileSyncError(f"failed to copy embedded content: {exc}") from exc

    templates_path = posixpath.join(repo_path, "templates")
    try:
        process_bundles(
            wt, CLUSTER_NAME_PLACEHOLDER, repo_url, repo_path,
            templates_path, bundles, argocd_ns=argocd_ns,
        )
    except Exception as exc:
        raise ProfileSyncError(f"failed to process bundles: {exc}") from exc

    try:
        changed = gitrepo.commit_changes(tmp_dir, repo, COMMIT_MESSAGE)
    except gitrepo.GitError as exc:
        raise ProfileSyncError(f"failed to commit changes: {exc}") from exc
    if not changed:
        logger.info("no changed files, skipping commit & push")
        return False

    try:
        gitrepo.push(repo, auth, branch=repo_branch or None)
    except gitrepo.GitError as exc:
        raise ProfileSyncError(f"failed to push to remote repository: {exc}") from exc
    logger.info("successfully pushed working tree (%s)", tmp_dir)
    return True
