"""
Ahead/behind arithmetic between branches and their parents or remote mirrors.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .git_manager import GitManager
from .models import BranchStatus


logger = logging.getLogger(__name__)


class DivergenceCalculator:
    """Commit-count comparisons. Never prompts and never exits."""

    def __init__(self, git_manager: GitManager, origin_remote: str = "origin") -> None:
        self.gm = git_manager
        self.origin_remote = origin_remote

    def ahead_behind(self, branch: str, other: str) -> Tuple[int, int]:
        """Commits reachable from branch but not other, and the reverse."""
        return self.gm.ahead_behind(branch, other)

    def describe(self, branch: str, other: str) -> str:
        ahead, behind = self.ahead_behind(branch, other)
        if ahead == 0 and behind == 0:
            return f"same as {other}"
        return f"{ahead} ahead, {behind} behind {other}"

    def remote_mirror(self, branch: str) -> Optional[Tuple[int, int]]:
        """Compare branch with its remote-tracking mirror, if it has one."""
        mirror = f"{self.origin_remote}/{branch}"
        if self.gm.rev_parse(f"refs/remotes/{mirror}") is None:
            return None
        return self.ahead_behind(branch, mirror)

    def remote_branch_exists(self, branch: str, remote: Optional[str] = None) -> bool:
        return self.gm.ls_remote(remote or self.origin_remote, f"refs/heads/{branch}") is not None

    def status(self, branch: str, parent: str) -> BranchStatus:
        ahead, behind = self.ahead_behind(branch, parent)
        result = BranchStatus(branch=branch, parent=parent, ahead=ahead, behind=behind)
        mirror = self.remote_mirror(branch)
        if mirror is not None:
            result.has_mirror = True
            result.mirror_ahead, result.mirror_behind = mirror
        return result

    def status_line(self, branch: str, parent: str) -> str:
        st = self.status(branch, parent)
        if st.ahead == 0 and st.behind == 0:
            line = f"{branch}: same as {parent}"
        else:
            line = f"{branch}: {st.ahead} ahead, {st.behind} behind {parent}"
        if st.mirror_behind:
            line += f", {st.mirror_behind} behind {self.origin_remote}/{branch}"
        return line
