"""
Runtime configuration.

Values come from the environment first and can be overridden by CLI options.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_MAX_CHAIN_DEPTH = 500
DEFAULT_GUI_MERGE_TOOL = "meld"
PARENTS_FILE = Path(".gee") / "parents"


def _detect_main_branch(repo_dir: Path) -> str:
    """Older clones use `master`; everything else uses `main`."""
    if (repo_dir / "master").is_dir():
        return "master"
    return "main"


@dataclass
class GeeConfig:
    """Settings shared by every component of one invocation."""

    repo_dir: Path
    main_branch: str = "main"
    upstream_remote: str = "upstream"
    origin_remote: str = "origin"
    non_interactive: bool = False
    max_chain_depth: int = DEFAULT_MAX_CHAIN_DEPTH
    gui_merge_tool: str = DEFAULT_GUI_MERGE_TOOL
    parents_file: Optional[Path] = field(default=None)

    def __post_init__(self) -> None:
        self.repo_dir = Path(self.repo_dir).expanduser().resolve()
        if self.parents_file is None:
            self.parents_file = self.repo_dir / PARENTS_FILE

    @property
    def upstream_main(self) -> str:
        return f"{self.upstream_remote}/{self.main_branch}"

    @property
    def main_dir(self) -> Path:
        return self.repo_dir / self.main_branch

    def branch_dir(self, branch: str) -> Path:
        """Default location of a branch worktree."""
        return self.repo_dir / branch

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        repo_dir: Optional[Path] = None,
        main_branch: Optional[str] = None,
        non_interactive: Optional[bool] = None,
    ) -> GeeConfig:
        env = os.environ if environ is None else environ

        if repo_dir is None:
            if env.get("GEE_REPO_DIR"):
                repo_dir = Path(env["GEE_REPO_DIR"])
            else:
                gee_dir = Path(env.get("GEE_DIR") or Path.home() / "gee").expanduser()
                repo = env.get("GEE_REPO") or env.get("REPO") or "internal"
                repo_dir = gee_dir / repo
        repo_dir = Path(repo_dir).expanduser()

        if main_branch is None:
            main_branch = env.get("GEE_MAIN") or _detect_main_branch(repo_dir)
        if non_interactive is None:
            non_interactive = bool(env.get("YESYESYES"))

        return cls(repo_dir=repo_dir, main_branch=main_branch, non_interactive=non_interactive)
