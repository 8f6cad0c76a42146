"""
Tests for data models.
"""

from pathlib import Path

from gee_rebase.models import (
    FatalUserError,
    GeeError,
    InternalInvariantError,
    ParentageGraphError,
    RebasePhase,
    RebaseResult,
    RebaseStalledError,
    UncommittedChangesError,
    WorktreeEntry,
    is_upstream_ref,
)


class TestRebaseResult:
    def test_starts_idle(self):
        result = RebaseResult(branch="feature", parent="main")
        assert result.phase is RebasePhase.IDLE
        assert result.transitions == [RebasePhase.IDLE]
        assert result.skipped
        assert not result.ok

    def test_move_to_records_transitions(self):
        result = RebaseResult(branch="feature", parent="main")
        result.move_to(RebasePhase.ATTEMPTING)
        result.move_to(RebasePhase.SUCCEEDED)
        assert result.transitions == [RebasePhase.IDLE, RebasePhase.ATTEMPTING, RebasePhase.SUCCEEDED]
        assert result.ok

    def test_transitions_are_not_shared(self):
        first = RebaseResult(branch="a", parent="main")
        first.move_to(RebasePhase.ATTEMPTING)
        assert RebaseResult(branch="b", parent="main").transitions == [RebasePhase.IDLE]


def test_worktree_entry_path_is_path():
    assert WorktreeEntry(branch="main", path="/tmp/main").path == Path("/tmp/main")


def test_is_upstream_ref():
    assert is_upstream_ref("upstream/main")
    assert is_upstream_ref("upstream/refs/pull/12/head")
    assert not is_upstream_ref("origin/main")
    assert not is_upstream_ref("main")


def test_error_hierarchy():
    assert issubclass(UncommittedChangesError, FatalUserError)
    assert issubclass(RebaseStalledError, FatalUserError)
    assert issubclass(ParentageGraphError, InternalInvariantError)
    assert issubclass(InternalInvariantError, GeeError)
    assert not issubclass(InternalInvariantError, FatalUserError)
