"""
Shared fixtures: isolated logging and git identity, plus a throwaway clone
laid out the way gee-rebase expects (one worktree per branch under a repo dir).
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from gee_rebase.config import GeeConfig


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=str(cwd), check=True, capture_output=True, text=True)
    return result.stdout.strip()


def commit_file(cwd: Path, name: str, content: str, message: str) -> str:
    (Path(cwd) / name).write_text(content, encoding="utf-8")
    git(cwd, "add", name)
    git(cwd, "commit", "-q", "-m", message)
    return git(cwd, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GEE_REBASE_LOG", str(tmp_path / "logs"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for var in ("YESYESYES", "GEE_REPO_DIR", "GEE_DIR", "GEE_REPO", "REPO", "GEE_MAIN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def gee_repo(tmp_path: Path) -> SimpleNamespace:
    """Upstream and origin bare repos plus a repo dir holding the main worktree."""
    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init", "-q")
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(seed, "README.md", "hello\n", "Initial commit")

    upstream = tmp_path / "upstream.git"
    origin = tmp_path / "origin.git"
    git(tmp_path, "clone", "-q", "--bare", str(seed), str(upstream))
    git(tmp_path, "clone", "-q", "--bare", str(seed), str(origin))

    repo_dir = tmp_path / "gee"
    repo_dir.mkdir()
    git(repo_dir, "clone", "-q", str(origin), "main")
    main_dir = repo_dir / "main"
    git(main_dir, "remote", "add", "upstream", str(upstream))
    git(main_dir, "fetch", "-q", "upstream")

    return SimpleNamespace(
        seed=seed,
        upstream=upstream,
        origin=origin,
        repo_dir=repo_dir,
        main_dir=main_dir,
        config=GeeConfig(repo_dir=repo_dir, non_interactive=True),
    )


def push_upstream(repo: SimpleNamespace, name: str, content: str, message: str) -> str:
    """Land a commit on upstream's main, as if merged by someone else."""
    sha = commit_file(repo.seed, name, content, message)
    git(repo.seed, "push", "-q", str(repo.upstream), "main")
    return sha
