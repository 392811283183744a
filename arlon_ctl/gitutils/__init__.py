"""Version-control adapter (clone, commit, push)."""

from arlon_ctl.gitutils.repo import (
    DEFAULT_REMOTE,
    GitAuth,
    GitError,
    auth_from_creds,
    changed_files,
    clone_repo,
    commit_changes,
    push,
    worktree,
)

__all__ = [
    "DEFAULT_REMOTE",
    "GitAuth",
    "GitError",
    "auth_from_creds",
    "changed_files",
    "clone_repo",
    "commit_changes",
    "push",
    "worktree",
]
