"""Registered git repository contexts.

Aliases for git repositories are kept in ``<argocd config dir>/repoctx``
as JSON::

    {"current": {"alias": "default", "url": "..."},
     "repos": [{"alias": "default", "url": "..."}, ...]}

The ``default`` alias is also the current context while it is registered.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

REPO_CTX_FILE = "repoctx"
DEFAULT_ALIAS = "default"


class RepoContextError(Exception):
    """The repository context file is unreadable or inconsistent."""


class RepoCtx(BaseModel):
    alias: str = ""
    url: str = ""


class RepoCtxCfg(BaseModel):
    current: RepoCtx = Field(default_factory=RepoCtx)
    repos: List[RepoCtx] = Field(default_factory=list)

    def find(self, alias: str) -> Optional[RepoCtx]:
        for repo in self.repos:
            if repo.alias == alias:
                return repo
        return None


# ---------------------------------------------------------------------------
# File location
# ---------------------------------------------------------------------------


def config_dir() -> Path:
    """Return the argocd CLI config directory.

    Uses ``ARGOCD_CONFIG_DIR`` if set, then ``XDG_CONFIG_HOME/argocd``,
    otherwise ``~/.config/argocd``.
    """
    explicit = os.environ.get("ARGOCD_CONFIG_DIR", "")
    if explicit:
        return Path(explicit)
    base = os.environ.get("XDG_CONFIG_HOME", "")
    if not base:
        base = str(Path.home() / ".config")
    return Path(base) / "argocd"


def repo_ctx_path(directory: Optional[Path] = None) -> Path:
    return (directory or config_dir()) / REPO_CTX_FILE


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------


def load_repo_ctx(path: Path) -> Optional[RepoCtxCfg]:
    """Parse *path*; ``None`` when the file is missing or empty."""
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RepoContextError(f"cannot read config file, error: {exc}") from exc
    if not content.strip():
        return None
    try:
        return RepoCtxCfg.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise RepoContextError(f"cannot open config file, error: {exc}") from exc


def save_repo_ctx(cfg: RepoCtxCfg, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_text(
            json.dumps(cfg.model_dump(mode="json"), indent="\t") + "\n",
            encoding="utf-8",
        )
    except OSError as exc:
        raise RepoContextError(f"cannot overwrite config file, error: {exc}") from exc
    logger.debug("Repository context written to %s", path)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def register(url: str, alias: str = DEFAULT_ALIAS, *, path: Optional[Path] = None) -> RepoCtx:
    """Add *alias* for *url*; registering an existing alias is an error."""
    path = path or repo_ctx_path()
    cfg = load_repo_ctx(path) or RepoCtxCfg()
    if cfg.find(alias) is not None:
        raise RepoContextError(f"repository alias {alias} already registered")
    ctx = RepoCtx(alias=alias, url=url)
    cfg.repos.append(ctx)
    if alias == DEFAULT_ALIAS:
        cfg.current = ctx
    save_repo_ctx(cfg, path)
    logger.info("Registered repository %s as %s", url, alias)
    return ctx


def unregister(alias: str, *, path: Optional[Path] = None) -> Optional[bool]:
    """Remove *alias*.

    Returns ``None`` when nothing is registered at all, ``False`` when the
    alias is unknown and ``True`` after removal.
    """
    path = path or repo_ctx_path()
    cfg = load_repo_ctx(path)
    if cfg is None:
        return None
    ctx = cfg.find(alias)
    if ctx is None:
        return False
    if alias == DEFAULT_ALIAS and cfg.current.alias == DEFAULT_ALIAS:
        cfg.current = RepoCtx()
    cfg.repos.remove(ctx)
    save_repo_ctx(cfg, path)
    logger.info("Unregistered repository alias %s", alias)
    return True


def list_repos(*, path: Optional[Path] = None) -> RepoCtxCfg:
    return load_repo_ctx(path or repo_ctx_path()) or RepoCtxCfg()
