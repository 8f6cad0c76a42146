"""
Tests for worktree discovery.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gee_rebase.models import NotFoundError
from gee_rebase.worktree_registry import WorktreeRegistry, parse_worktree_porcelain


PORCELAIN = """worktree /work/repo/main
HEAD 1111111111111111111111111111111111111111
branch refs/heads/main

worktree /work/repo/detached
HEAD 2222222222222222222222222222222222222222
detached

worktree /work/repo/feature/x
HEAD 3333333333333333333333333333333333333333
branch refs/heads/feature/x"""


class TestParseWorktreePorcelain:
    def test_parses_branches_and_drops_detached(self):
        entries = parse_worktree_porcelain(PORCELAIN)
        assert [(e.branch, e.path) for e in entries] == [
            ("main", Path("/work/repo/main")),
            ("feature/x", Path("/work/repo/feature/x")),
        ]

    def test_empty_output(self):
        assert parse_worktree_porcelain("") == []


class TestWorktreeRegistry:
    def setup_method(self):
        self.gm = MagicMock()
        self.gm.list_worktrees_porcelain.return_value = PORCELAIN
        self.registry = WorktreeRegistry(self.gm)
        self.registry.refresh()

    def test_root_of(self):
        assert self.registry.root_of("main") == Path("/work/repo/main")
        assert self.registry.has_worktree("feature/x")

    def test_root_of_unknown_branch(self):
        with pytest.raises(NotFoundError, match="has no worktree"):
            self.registry.root_of("nope")

    def test_refresh_picks_up_changes(self):
        self.gm.list_worktrees_porcelain.return_value = "worktree /work/repo/main\nbranch refs/heads/main\n"
        self.registry.refresh()
        assert not self.registry.has_worktree("feature/x")

    def test_branch_at_uses_innermost_worktree(self, tmp_path):
        outer = tmp_path / "main"
        inner = outer / "nested"
        (inner / "src").mkdir(parents=True)
        self.gm.list_worktrees_porcelain.return_value = (
            f"worktree {outer}\nbranch refs/heads/main\n\nworktree {inner}\nbranch refs/heads/nested\n"
        )
        self.registry.refresh()
        assert self.registry.branch_at(inner / "src") == "nested"
        assert self.registry.branch_at(outer) == "main"
        assert self.registry.branch_at(tmp_path) is None
