"""
Tests for the rebase engine with a mocked worktree.
"""

import itertools
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gee_rebase.config import GeeConfig
from gee_rebase.models import (
    FatalUserError,
    InternalInvariantError,
    RebasePhase,
    RebaseStalledError,
    UncommittedChangesError,
)
from gee_rebase.parentage_store import ParentageStore
from gee_rebase.prompt_interface import AutoYesPrompt
from gee_rebase.rebase_engine import RebaseEngine


PARENT_SHA = "p" * 40
NEW_SHA = "n" * 40


class DecliningPrompt(AutoYesPrompt):
    def confirm_rebase_with_open_pr(self, branch, pr_numbers):
        return False


@pytest.fixture()
def gm():
    gm = MagicMock()
    gm.working_dir = Path("/work/feature")
    gm.is_rebase_in_progress.return_value = False
    gm.has_uncommitted_changes.return_value = False
    gm.rev_parse.return_value = PARENT_SHA
    gm.ls_remote.return_value = PARENT_SHA
    gm.start_rebase.return_value = (True, [])
    gm.pull_rebase.return_value = (True, [])
    gm.head_sha.return_value = NEW_SHA
    gm.is_ancestor.return_value = True
    return gm


@pytest.fixture()
def store(tmp_path):
    store = ParentageStore(tmp_path / "parents")
    store.set_parent("feature", "main", merge_base="old")
    return store


def make_engine(tmp_path, store, gm, prompt=None, pull_requests=None):
    registry = MagicMock()
    registry.root_of.return_value = tmp_path
    return RebaseEngine(
        GeeConfig(repo_dir=tmp_path, non_interactive=True),
        store,
        registry,
        prompt=prompt or AutoYesPrompt(),
        pull_requests=pull_requests,
        git_factory=lambda path: gm,
    )


class TestRebaseEngine:
    def test_successful_rebase(self, tmp_path, store, gm):
        prompt = AutoYesPrompt()
        result = make_engine(tmp_path, store, gm, prompt=prompt).rebase("feature", "main")

        assert result.ok
        assert result.transitions == [RebasePhase.IDLE, RebasePhase.ATTEMPTING, RebasePhase.SUCCEEDED]
        assert result.new_head == NEW_SHA
        gm.tag_force.assert_called_once_with("feature.REBASE_BACKUP", "HEAD")
        gm.start_rebase.assert_called_once_with("main", "feature", onto=None)
        gm.is_ancestor.assert_called_once_with(PARENT_SHA, NEW_SHA)
        gm.push.assert_called_once_with("origin", "+feature")
        assert store.get_merge_base("feature") == PARENT_SHA
        assert any("feature.REBASE_BACKUP" in m for m in prompt.messages)

    def test_uncommitted_changes_touch_nothing(self, tmp_path, store, gm):
        gm.has_uncommitted_changes.return_value = True
        with pytest.raises(UncommittedChangesError):
            make_engine(tmp_path, store, gm).rebase("feature", "main")
        gm.tag_force.assert_not_called()
        gm.start_rebase.assert_not_called()
        assert store.get_merge_base("feature") == "old"

    def test_upstream_parent_is_pulled(self, tmp_path, store, gm):
        result = make_engine(tmp_path, store, gm).rebase("main", "upstream/main")
        assert result.ok
        gm.ls_remote.assert_called_once_with("upstream", "refs/heads/main")
        gm.pull_rebase.assert_called_once_with("upstream", "refs/heads/main")
        gm.start_rebase.assert_not_called()

    def test_pull_request_ref_is_pulled_as_is(self, tmp_path, store, gm):
        make_engine(tmp_path, store, gm).rebase("pr_5", "upstream/refs/pull/5/head")
        gm.pull_rebase.assert_called_once_with("upstream", "refs/pull/5/head")

    def test_onto_with_upstream_parent_is_refused(self, tmp_path, store, gm):
        with pytest.raises(FatalUserError):
            make_engine(tmp_path, store, gm).rebase("feature", "upstream/main", onto="main")

    def test_onto_checks_against_onto_head(self, tmp_path, store, gm):
        gm.rev_parse.side_effect = lambda ref: {"a-unsquashed": "u" * 40, "a": "a" * 40}.get(ref)
        result = make_engine(tmp_path, store, gm).rebase("feature", "a-unsquashed", onto="a")
        assert result.ok
        gm.start_rebase.assert_called_once_with("a-unsquashed", "feature", onto="a")
        gm.is_ancestor.assert_called_once_with("a" * 40, NEW_SHA)
        assert store.get_merge_base("feature") == "a" * 40

    def test_declined_open_pr_skips(self, tmp_path, store, gm):
        pull_requests = MagicMock()
        pull_requests.open_pr_numbers.return_value = [12]
        result = make_engine(tmp_path, store, gm, prompt=DecliningPrompt(), pull_requests=pull_requests).rebase(
            "feature", "main"
        )
        assert result.skipped
        assert result.message == "Skipped update"
        gm.tag_force.assert_not_called()
        gm.start_rebase.assert_not_called()

    def test_open_pr_check_can_be_disabled(self, tmp_path, store, gm):
        pull_requests = MagicMock()
        make_engine(tmp_path, store, gm, prompt=DecliningPrompt(), pull_requests=pull_requests).rebase(
            "feature", "origin/feature", check_open_pr=False, record_merge_base=False
        )
        pull_requests.open_pr_numbers.assert_not_called()
        assert store.get_merge_base("feature") == "old"

    def test_failed_ancestor_check_is_an_internal_error(self, tmp_path, store, gm):
        gm.is_ancestor.return_value = False
        engine = make_engine(tmp_path, store, gm)
        with pytest.raises(InternalInvariantError, match="not an ancestor"):
            engine.rebase("feature", "main")
        gm.push.assert_not_called()
        assert store.get_merge_base("feature") == "old"

    def test_failure_without_rebase_state_is_an_internal_error(self, tmp_path, store, gm):
        gm.start_rebase.return_value = (False, [])
        with pytest.raises(InternalInvariantError, match="no rebase in progress"):
            make_engine(tmp_path, store, gm).rebase("feature", "main")

    def test_stalled_resolution_is_fatal(self, tmp_path, store, gm):
        gm.start_rebase.return_value = (False, ["file.txt"])
        gm.is_rebase_in_progress.side_effect = itertools.chain([False], itertools.repeat(True))
        gm.get_status_porcelain.return_value = ["M  file.txt"]
        gm.continue_rebase.return_value = (False, [])
        with pytest.raises(RebaseStalledError, match="git rebase --continue"):
            make_engine(tmp_path, store, gm).rebase("feature", "main")
        gm.push.assert_not_called()

    def test_resumes_rebase_in_progress(self, tmp_path, store, gm):
        gm.is_rebase_in_progress.side_effect = [True, True, False, False]
        gm.rebase_onto_commit.return_value = PARENT_SHA
        gm.get_status_porcelain.return_value = ["M  file.txt"]
        gm.continue_rebase.return_value = (True, [])

        result = make_engine(tmp_path, store, gm).rebase("feature", "main")

        assert result.ok
        assert RebasePhase.CONFLICT_SUSPENDED in result.transitions
        gm.tag_force.assert_not_called()
        gm.continue_rebase.assert_called_once()
