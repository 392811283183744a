"""Shared fixtures: throwaway git remotes for the version-control tests."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


def make_remote(tmp_path: Path, files: Dict[str, str], branch: str = "main") -> Path:
    """Create a bare repository whose *branch* holds *files*; returns its path."""
    import git

    bare_path = tmp_path / "remote.git"
    bare = git.Repo.init(bare_path, bare=True)
    bare.git.symbolic_ref("HEAD", f"refs/heads/{branch}")

    seed_path = tmp_path / "seed"
    seed = git.Repo.init(seed_path)
    for rel, content in files.items():
        dest = seed_path / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(content, encoding="utf-8")
    seed.git.add(A=True)
    actor = git.Actor("test", "test@example.com")
    seed.index.commit("seed", author=actor, committer=actor)
    seed.git.push(str(bare_path), f"HEAD:refs/heads/{branch}")
    seed.close()
    bare.close()
    return bare_path


@pytest.fixture
def remote_factory(tmp_path):
    def _factory(files: Dict[str, str], branch: str = "main") -> Path:
        return make_remote(tmp_path, files, branch)

    return _factory
