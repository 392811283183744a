"""Local aliases for git repositories used by arlon."""

from arlon_ctl.gitrepo.context import (
    DEFAULT_ALIAS,
    REPO_CTX_FILE,
    RepoContextError,
    RepoCtx,
    RepoCtxCfg,
    config_dir,
    list_repos,
    load_repo_ctx,
    register,
    repo_ctx_path,
    save_repo_ctx,
    unregister,
)

__all__ = [
    "DEFAULT_ALIAS",
    "REPO_CTX_FILE",
    "RepoContextError",
    "RepoCtx",
    "RepoCtxCfg",
    "config_dir",
    "list_repos",
    "load_repo_ctx",
    "register",
    "repo_ctx_path",
    "save_repo_ctx",
    "unregister",
]
