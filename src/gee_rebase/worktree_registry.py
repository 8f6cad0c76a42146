"""
Branch -> working directory map derived from `git worktree list --porcelain`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from .git_manager import GitManager
from .models import NotFoundError, WorktreeEntry


logger = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"


def parse_worktree_porcelain(output: str) -> List[WorktreeEntry]:
    """Parse porcelain records; records not tied to a branch are dropped."""
    entries: List[WorktreeEntry] = []
    path: Optional[str] = None
    branch: Optional[str] = None

    def flush() -> None:
        if path and branch:
            entries.append(WorktreeEntry(branch=branch, path=Path(path)))

    for line in output.splitlines():
        if not line.strip():
            flush()
            path, branch = None, None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            path = value
        elif key == "branch" and value.startswith(BRANCH_REF_PREFIX):
            branch = value[len(BRANCH_REF_PREFIX):]
    flush()
    return entries


class WorktreeRegistry:
    """Projection of git's worktree metadata.

    Nothing here refreshes on its own: callers that add or remove worktrees
    must call refresh() afterwards.
    """

    def __init__(self, git_manager: GitManager) -> None:
        self.gm = git_manager
        self._by_branch: Dict[str, WorktreeEntry] = {}

    def refresh(self) -> None:
        entries = parse_worktree_porcelain(self.gm.list_worktrees_porcelain())
        self._by_branch = {e.branch: e for e in entries}
        logger.debug(f"Worktrees: {', '.join(sorted(self._by_branch)) or '(none)'}")

    def entries(self) -> List[WorktreeEntry]:
        return [self._by_branch[b] for b in sorted(self._by_branch)]

    def has_worktree(self, branch: str) -> bool:
        return branch in self._by_branch

    def root_of(self, branch: str) -> Path:
        entry = self._by_branch.get(branch)
        if entry is None:
            raise NotFoundError(f"Branch {branch} has no worktree.")
        return entry.path

    def branch_at(self, directory: Path) -> Optional[str]:
        """Return the branch whose worktree contains directory."""
        directory = Path(directory).resolve()
        best: Optional[WorktreeEntry] = None
        for entry in self._by_branch.values():
            root = entry.path.resolve()
            if directory == root or root in directory.parents:
                if best is None or len(root.parts) > len(best.path.resolve().parts):
                    best = entry
        return best.branch if best else None
