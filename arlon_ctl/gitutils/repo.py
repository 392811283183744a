"""Git working-copy operations on top of GitPython.

Each materialisation clones into its own temporary directory, so working
trees are never shared and need no locking.  Credentials are injected
per command and never written to ``.git/config``; an SSH key file lives
only as long as the clone that uses it (see :func:`remove_clone`).
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import git

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"
DEFAULT_COMMIT_MESSAGE = "arlon automated commit"
COMMIT_AUTHOR = git.Actor("arlon automation", "arlon@arlon.io")


class GitError(Exception):
    """A clone, commit or push failed."""


def _stderr(exc: git.GitCommandError) -> str:
    stderr = exc.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return str(stderr or exc).strip()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GitAuth:
    """Credentials for one remote.

    HTTP(S) remotes get the username/password embedded in the URL used
    for that single command; SSH remotes get ``GIT_SSH_COMMAND``.
    """

    username: str = ""
    password: str = field(default="", repr=False)
    ssh_key_path: str = ""

    def url(self, remote_url: str) -> str:
        parts = urlsplit(remote_url)
        if parts.scheme not in ("http", "https") or not (self.username or self.password):
            return remote_url
        user = quote(self.username or "git", safe="")
        netloc = f"{user}:{quote(self.password, safe='')}@{parts.hostname}"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def env(self) -> Dict[str, str]:
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.ssh_key_path:
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {self.ssh_key_path} -o IdentitiesOnly=yes "
                "-o StrictHostKeyChecking=accept-new"
            )
        return env

    def discard(self) -> None:
        """Delete the SSH key file, if one was written."""
        if self.ssh_key_path:
            Path(self.ssh_key_path).unlink(missing_ok=True)


def auth_from_creds(creds, key_dir: Optional[str] = None) -> GitAuth:
    """Build a :class:`GitAuth` from :class:`~arlon_ctl.argocd.repocreds.RepoCreds`.

    An SSH private key is written (mode 0600) under *key_dir*, or to a
    fresh temporary file; :meth:`GitAuth.discard` removes it.
    """
    if creds is None:
        return GitAuth()
    key_path = ""
    if getattr(creds, "ssh_private_key", ""):
        if key_dir:
            key_path = os.path.join(key_dir, "id_repo")
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        else:
            fd, key_path = tempfile.mkstemp(prefix="arlon-key-")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(creds.ssh_private_key)
        os.chmod(key_path, 0o600)
    return GitAuth(
        username=creds.username,
        password=creds.password,
        ssh_key_path=key_path,
    )


# ---------------------------------------------------------------------------
# Clone / worktree
# ---------------------------------------------------------------------------


def clone_repo(
    creds,
    url: str,
    branch: str,
    *,
    tmp_root: Optional[str] = None,
) -> Tuple[git.Repo, str, GitAuth]:
    """Clone *url* at *branch* into a fresh temporary directory.

    Returns ``(repo, tmp_dir, auth)``; the caller disposes of both with
    :func:`remove_clone`.  A failed clone leaves nothing behind.
    """
    tmp_dir = tempfile.mkdtemp(prefix="arlon-", dir=tmp_root)
    auth = GitAuth()
    try:
        auth = auth_from_creds(creds)
        kwargs = {"env": auth.env()}
        if branch:
            kwargs["branch"] = branch
        repo = git.Repo.clone_from(auth.url(url), tmp_dir, **kwargs)
    except (git.GitCommandError, OSError) as exc:
        remove_clone(tmp_dir, auth)
        detail = _stderr(exc) if isinstance(exc, git.GitCommandError) else str(exc)
        raise GitError(f"failed to clone {url}@{branch or 'HEAD'}: {detail}") from exc
    # keep credentials out of .git/config
    repo.remote(DEFAULT_REMOTE).set_url(url)
    logger.info("Cloned %s (%s) into %s", url, branch or "HEAD", tmp_dir)
    return repo, tmp_dir, auth


def remove_clone(tmp_dir: str, auth: GitAuth, *, keep_tree: bool = False) -> None:
    """Delete the SSH key of *auth* and, unless *keep_tree*, the clone itself."""
    auth.discard()
    if tmp_dir and not keep_tree:
        shutil.rmtree(tmp_dir, ignore_errors=True)


def worktree(repo: git.Repo) -> Path:
    """Return the mutable working tree of *repo*."""
    if repo.working_tree_dir is None:
        raise GitError("repository has no working tree")
    return Path(repo.working_tree_dir)


# ---------------------------------------------------------------------------
# Commit / push
# ---------------------------------------------------------------------------


def changed_files(repo: git.Repo) -> List[str]:
    """Paths staged in the index that differ from ``HEAD``."""
    if not repo.head.is_valid():
        return sorted(str(path) for path, _stage in repo.index.entries.keys())
    return sorted({d.a_path or d.b_path for d in repo.index.diff("HEAD")})


def commit_changes(
    tmp_dir: str,
    repo: git.Repo,
    message: str = DEFAULT_COMMIT_MESSAGE,
) -> bool:
    """Stage every change in the working tree and commit if anything differs.

    Returns ``True`` when a commit was made.
    """
    try:
        repo.git.add(A=True)
        changes = changed_files(repo)
        if not changes:
            logger.debug("No changes in %s", tmp_dir)
            return False
        for path in changes:
            logger.debug("changed: %s", path)
        commit = repo.index.commit(message, author=COMMIT_AUTHOR, committer=COMMIT_AUTHOR)
    except git.GitCommandError as exc:
        raise GitError(f"failed to commit in {tmp_dir}: {_stderr(exc)}") from exc
    logger.info("Committed %d file(s) as %s", len(changes), commit.hexsha[:8])
    return True


def push(
    repo: git.Repo,
    auth: GitAuth,
    remote_name: str = DEFAULT_REMOTE,
    branch: Optional[str] = None,
) -> None:
    """Push ``HEAD`` to *branch* (default: the checked-out branch) on *remote_name*."""
    if branch is None:
        branch = repo.active_branch.name
    remote_url = repo.remote(remote_name).url
    try:
        repo.git.push(auth.url(remote_url), f"HEAD:refs/heads/{branch}", env=auth.env())
    except git.GitCommandError as exc:
        raise GitError(f"failed to push to {remote_url} ({branch}): {_stderr(exc)}") from exc
    logger.info("Pushed %s to %s", branch, remote_url)
