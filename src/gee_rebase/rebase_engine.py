"""
Safe rebase of one branch onto another.

Every attempt is bracketed by a checkpoint tag before and an ancestor check
plus a forced push to the personal fork after, so that a successful local
rebase is always backed up and always undoable.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .checkpoint_manager import CheckpointManager
from .config import GeeConfig
from .cli_conflict_prompt import CliConflictPrompt
from .cli_prompt import CliPrompt
from .conflict_prompt_interface import ConflictPrompt, NonInteractiveConflictPrompt
from .conflict_resolver import ConflictResolver
from .git_manager import GitManager
from .hosting import NoPullRequests, PullRequestLookup
from .models import (
    UPSTREAM_PREFIX,
    FatalUserError,
    InternalInvariantError,
    NotFoundError,
    RebasePhase,
    RebaseResult,
    RebaseStalledError,
    ResolutionOutcome,
    UncommittedChangesError,
    is_upstream_ref,
)
from .parentage_store import ParentageStore
from .prompt_interface import AutoYesPrompt, UserPrompt
from .worktree_registry import WorktreeRegistry


logger = logging.getLogger(__name__)


GitFactory = Callable[..., GitManager]


def _upstream_ref(parent: str) -> str:
    """`upstream/main` -> `refs/heads/main`; `upstream/refs/pull/7/head` -> `refs/pull/7/head`."""
    ref = parent[len(UPSTREAM_PREFIX):]
    return ref if ref.startswith("refs/") else f"refs/heads/{ref}"


class RebaseEngine:
    """Rebases one branch at a time inside that branch's own worktree."""

    def __init__(
        self,
        config: GeeConfig,
        store: ParentageStore,
        registry: WorktreeRegistry,
        prompt: Optional[UserPrompt] = None,
        conflict_prompt: Optional[ConflictPrompt] = None,
        pull_requests: Optional[PullRequestLookup] = None,
        git_factory: GitFactory = GitManager,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry
        if config.non_interactive:
            self.prompt = prompt or AutoYesPrompt()
            self.conflict_prompt = conflict_prompt or NonInteractiveConflictPrompt()
        else:
            self.prompt = prompt or CliPrompt()
            self.conflict_prompt = conflict_prompt or CliConflictPrompt()
        self.pull_requests = pull_requests or NoPullRequests()
        self.git_factory = git_factory

    def git_for(self, branch: str) -> GitManager:
        return self.git_factory(self.registry.root_of(branch))

    def rebase(
        self,
        child: str,
        parent: str,
        onto: Optional[str] = None,
        check_open_pr: bool = True,
        record_merge_base: bool = True,
    ) -> RebaseResult:
        """Rebase child onto parent, or replay parent..child onto `onto`.

        `record_merge_base` is turned off when parent is not the recorded parent
        (e.g. when integrating the branch's own remote mirror).
        """
        result = RebaseResult(branch=child, parent=parent, onto=onto, record_merge_base=record_merge_base)
        gm = self.git_for(child)

        if gm.is_rebase_in_progress():
            self.prompt.show_messages([f"A rebase of {child} is already in progress; resuming it."], "warning")
            result.parent_head = gm.rebase_onto_commit()
            result.move_to(RebasePhase.CONFLICT_SUSPENDED)
            return self._resolve_and_finish(gm, result)

        if gm.has_uncommitted_changes():
            raise UncommittedChangesError(
                f"{child} has uncommitted changes in {gm.working_dir}. Commit all changes and try again."
            )
        if onto and is_upstream_ref(parent):
            raise FatalUserError(f"Cannot replay {child} onto {onto}: pulling from {parent} does not support --onto.")

        if check_open_pr and not self._passes_open_pr_gate(gm, child, parent):
            result.message = "Skipped update"
            self.prompt.show_messages([f"Skipped update of {child}."])
            return result

        parent_head = self._resolve_parent_head(gm, parent)
        if onto:
            onto_head = gm.rev_parse(onto)
            if onto_head is None:
                raise NotFoundError(f"Cannot resolve {onto}.")
            result.parent_head = onto_head
        else:
            result.parent_head = parent_head

        CheckpointManager(gm).create_rebase_backup(child)

        result.move_to(RebasePhase.ATTEMPTING)
        if onto:
            self.prompt.show_messages([f"Replaying {child} commits since {parent} onto {onto}..."])
        else:
            self.prompt.show_messages([f"Rebasing {child} onto {parent}..."])

        if is_upstream_ref(parent):
            ok, _ = gm.pull_rebase(self.config.upstream_remote, _upstream_ref(parent))
        else:
            ok, _ = gm.start_rebase(parent, child, onto=onto)

        if ok and not gm.is_rebase_in_progress():
            return self._finish(gm, result)

        if not gm.is_rebase_in_progress():
            result.move_to(RebasePhase.FAILED)
            raise InternalInvariantError(
                f"Rebase of {child} onto {onto or parent} failed but git reports no rebase in progress "
                f"(worktree {gm.working_dir}, status: {gm.get_status_porcelain()})."
            )

        result.move_to(RebasePhase.CONFLICT_SUSPENDED)
        return self._resolve_and_finish(gm, result, restart=self._restarter(gm, child, parent, onto, parent_head))

    def _passes_open_pr_gate(self, gm: GitManager, child: str, parent: str) -> bool:
        if child == self.config.main_branch:
            return True
        prs = self.pull_requests.open_pr_numbers(child, cwd=gm.working_dir)
        if not prs:
            return True
        self.prompt.show_messages(
            [f"{child} has open pull request(s) {', '.join(f'#{n}' for n in prs)}; rebasing will rewrite what reviewers saw."],
            "warning",
        )
        return self.prompt.confirm_rebase_with_open_pr(child, prs)

    def _resolve_parent_head(self, gm: GitManager, parent: str) -> str:
        if is_upstream_ref(parent):
            sha = gm.ls_remote(self.config.upstream_remote, _upstream_ref(parent))
        else:
            sha = gm.rev_parse(parent)
        if sha is None:
            raise NotFoundError(f"Cannot resolve parent {parent}.")
        return sha

    def _restarter(
        self, gm: GitManager, child: str, parent: str, onto: Optional[str], parent_head: str
    ) -> Callable[[], None]:
        def restart() -> None:
            gm.abort_rebase()
            # Upstream refs are not local, so restart from the commit we resolved.
            base = parent_head if is_upstream_ref(parent) else parent
            args = ["rebase", "--no-autostash", "-i"]
            if onto:
                args += ["--onto", onto]
            args += [base, child]
            self.prompt.show_messages([f"Restarting: git {' '.join(args)}"])
            gm.run_git_interactive(*args)

        return restart

    def _resolve_and_finish(
        self, gm: GitManager, result: RebaseResult, restart: Optional[Callable[[], None]] = None
    ) -> RebaseResult:
        resolver = ConflictResolver(
            gm, self.conflict_prompt, gui_merge_tool=self.config.gui_merge_tool, restart=restart
        )
        outcome = resolver.resolve(result.branch)

        if outcome is ResolutionOutcome.ABORTED:
            result.move_to(RebasePhase.ABORTED)
            result.message = f"Rebase of {result.branch} aborted."
            return result

        if gm.is_rebase_in_progress():
            raise RebaseStalledError(
                f"Exited without resolving the rebase conflict in {result.branch}.\n"
                f"Finish it in {gm.working_dir} with 'git rebase --continue' (or give up with "
                f"'git rebase --abort'), then run this command again."
            )
        return self._finish(gm, result)

    def _finish(self, gm: GitManager, result: RebaseResult) -> RebaseResult:
        new_head = gm.head_sha()
        result.new_head = new_head
        target = result.parent_head
        if target is None:
            result.move_to(RebasePhase.FAILED)
            raise InternalInvariantError(f"Rebase of {result.branch} finished without a known target commit.")
        if not gm.is_ancestor(target, new_head):
            result.move_to(RebasePhase.FAILED)
            raise InternalInvariantError(
                f"Rebase of {result.branch} onto {result.onto or result.parent} reported success, "
                f"but {target[:10]} is not an ancestor of the new head {new_head[:10]}."
            )

        if result.record_merge_base:
            self.store.set_merge_base(result.branch, target)
        self.prompt.show_messages([CheckpointManager(gm).undo_hint(result.branch)], "dim")
        gm.push(self.config.origin_remote, f"+{result.branch}")
        result.move_to(RebasePhase.SUCCEEDED)
        result.message = f"{result.branch} is up to date with {result.onto or result.parent}."
        logger.info(result.message)
        return result
