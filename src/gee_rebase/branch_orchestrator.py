"""
Command-level operations over the branches of one repository clone.

Every branch lives in its own worktree under the repository directory, and
every branch has a recorded parent. The orchestrator ties the parentage store,
worktree registry, rebase engine and squash propagation together into the
operations exposed on the command line.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from .chain_builder import ChainBuilder
from .checkpoint_manager import CheckpointManager
from .config import GeeConfig
from .cli_conflict_prompt import CliConflictPrompt
from .cli_prompt import CliPrompt
from .conflict_prompt_interface import ConflictPrompt, NonInteractiveConflictPrompt
from .divergence import DivergenceCalculator
from .git_manager import GitManager
from .hosting import PullRequestLookup
from .models import (
    BranchStatus,
    FatalUserError,
    NotFoundError,
    RebasePhase,
    RebaseResult,
    UncommittedChangesError,
    is_upstream_ref,
)
from .parentage_store import ParentageStore
from .prompt_interface import AutoYesPrompt, UserPrompt
from .rebase_engine import GitFactory, RebaseEngine
from .squash_propagation import SquashPropagator
from .worktree_registry import WorktreeRegistry


logger = logging.getLogger(__name__)


class BranchOrchestrator:
    """Entry point for every branch operation of one repository clone."""

    def __init__(
        self,
        config: GeeConfig,
        prompt: Optional[UserPrompt] = None,
        conflict_prompt: Optional[ConflictPrompt] = None,
        pull_requests: Optional[PullRequestLookup] = None,
        git_factory: GitFactory = GitManager,
        cwd: Optional[Path] = None,
    ) -> None:
        if not config.main_dir.is_dir():
            raise FatalUserError(
                f"{config.main_dir} does not exist. Set GEE_REPO_DIR (or --repo-dir) to the directory "
                f"holding the {config.main_branch} worktree."
            )
        self.config = config
        self.cwd = Path(cwd or Path.cwd())
        if config.non_interactive:
            self.prompt = prompt or AutoYesPrompt()
            conflict_prompt = conflict_prompt or NonInteractiveConflictPrompt()
        else:
            self.prompt = prompt or CliPrompt()
            conflict_prompt = conflict_prompt or CliConflictPrompt()
        self.git_factory = git_factory

        self.store = ParentageStore(config.parents_file, config.main_branch, config.upstream_remote)
        self.git_manager = git_factory(config.main_dir)
        self.registry = WorktreeRegistry(self.git_manager)
        self.registry.refresh()
        self.divergence = DivergenceCalculator(self.git_manager, config.origin_remote)
        self.chain_builder = ChainBuilder(self.store, config.max_chain_depth)
        self.engine = RebaseEngine(
            config,
            self.store,
            self.registry,
            prompt=self.prompt,
            conflict_prompt=conflict_prompt,
            pull_requests=pull_requests,
            git_factory=git_factory,
        )
        self.propagator = SquashPropagator(
            config, self.store, self.chain_builder, self.engine, self.prompt, self.git_manager
        )
        logger.info(f"Initialized branch orchestrator for {config.repo_dir}")

    def __enter__(self) -> BranchOrchestrator:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.store.save()

    # --- Helpers ---
    def current_branch(self) -> str:
        """Branch whose worktree contains the working directory."""
        branch = self.registry.branch_at(self.cwd)
        if branch is None:
            raise FatalUserError(
                f"{self.cwd} is not inside a branch worktree of {self.config.repo_dir}. Pass a branch name."
            )
        return branch

    def _branch_or_current(self, branch: Optional[str]) -> str:
        return branch or self.current_branch()

    def _require_local(self, branch: str) -> None:
        if not self.git_manager.branch_exists(branch):
            raise NotFoundError(f"Branch {branch} does not exist.")

    def _is_dirty(self, branch: str) -> bool:
        if not self.registry.has_worktree(branch):
            return False
        return self.engine.git_for(branch).has_uncommitted_changes()

    def _comparable(self, parent: str) -> Optional[str]:
        """A revision usable for ahead/behind counts, or None for refs we never fetch."""
        return parent if self.git_manager.rev_parse(parent) is not None else None

    # --- Updating ---
    def update(self, branch: Optional[str] = None) -> List[RebaseResult]:
        """Bring one branch up to date with its remote mirror and then its parent."""
        branch = self._branch_or_current(branch)
        self._require_local(branch)
        results: List[RebaseResult] = []

        gm = self.engine.git_for(branch)
        gm.fetch_remote(self.config.origin_remote)
        mirror = self.divergence.remote_mirror(branch)
        if mirror is not None and mirror[1] > 0:
            remote_ref = f"{self.config.origin_remote}/{branch}"
            self.prompt.show_messages(
                [
                    f"{remote_ref} has {mirror[1]} commit(s) that {branch} does not.",
                    "Either you pushed from another machine, or somebody else pushed to your branch.",
                ],
                "warning",
            )
            if self.prompt.confirm_integrate_remote(branch, remote_ref, mirror[1]):
                result = self.engine.rebase(branch, remote_ref, check_open_pr=False, record_merge_base=False)
                results.append(result)
                if result.phase == RebasePhase.ABORTED:
                    return results

        parent = self.store.get_parent(branch)
        if parent == self.config.main_branch and branch != self.config.main_branch:
            main_result = self.update_main()
            results.append(main_result)
            if main_result.phase == RebasePhase.ABORTED:
                raise FatalUserError(f"Updating {self.config.main_branch} was aborted; not updating {branch}.")

        results.append(self.engine.rebase(branch, parent))
        return results

    def update_main(self) -> RebaseResult:
        """Pull the upstream main branch into the local main branch."""
        return self.engine.rebase(self.config.main_branch, self.config.upstream_main)

    def rupdate(self, branch: Optional[str] = None) -> List[RebaseResult]:
        """Update branch and every ancestor, ancestors first."""
        branch = self._branch_or_current(branch)
        chain = self.chain_builder.chain_for(branch)
        dirty = [b for b in chain if b != branch and self._is_dirty(b)]
        if dirty:
            raise UncommittedChangesError(
                f"{', '.join(dirty)} must be committed before {branch} can be updated recursively."
            )

        results: List[RebaseResult] = []
        for name in chain:
            result = self.engine.rebase(name, self.store.get_parent(name))
            results.append(result)
            if result.phase == RebasePhase.ABORTED:
                raise FatalUserError(f"Rebase of {name} was aborted; {branch} was not updated.")
        return results

    def update_all(self) -> List[RebaseResult]:
        """Update every local branch; failures are reported together at the end."""
        chain = self.chain_builder.chain_for_all(self.git_manager.list_local_branches())
        results: List[RebaseResult] = []
        failed: List[str] = []
        skipped: Set[str] = set()

        for name in chain:
            parent = self.store.get_parent(name)
            if parent in skipped or parent in failed:
                self.prompt.show_messages([f"Skipping {name}: its parent {parent} was not updated."], "warning")
                skipped.add(name)
                continue
            if not self.registry.has_worktree(name):
                self.prompt.show_messages([f"Skipping {name}: it has no worktree. Run repair."], "warning")
                skipped.add(name)
                continue
            if self._is_dirty(name):
                self.prompt.show_messages([f"Skipping {name}: it has uncommitted changes."], "warning")
                skipped.add(name)
                continue
            try:
                result = self.engine.rebase(name, parent)
            except FatalUserError as e:
                logger.error(f"Updating {name} failed: {e}")
                self.prompt.show_messages([str(e)], "error")
                failed.append(name)
                continue
            results.append(result)
            if result.phase == RebasePhase.ABORTED:
                failed.append(name)

        if failed:
            raise FatalUserError(f"Failed to update: {', '.join(failed)}")
        return results

    # --- Creating and removing branches ---
    def make_branch(self, name: str, sha: Optional[str] = None, parent: Optional[str] = None) -> Path:
        """Create branch name in its own worktree, child of the current branch."""
        if self.git_manager.branch_exists(name):
            raise FatalUserError(f"Branch {name} already exists.")
        path = self.config.branch_dir(name)
        if path.exists():
            raise FatalUserError(f"{path} already exists.")

        current = self.registry.branch_at(self.cwd) or self.config.main_branch
        parent = parent or current
        start = sha or current
        self.git_manager.add_worktree(path, name, start=start)

        if is_upstream_ref(parent):
            merge_base = self.git_manager.rev_parse(start) or ""
        elif sha:
            merge_base = self.git_manager.merge_base(parent, sha) or ""
        else:
            merge_base = self.git_manager.rev_parse(parent) or ""
        self.store.set_parent(name, parent, merge_base=merge_base)
        self.registry.refresh()

        if self.divergence.remote_branch_exists(name):
            self.prompt.show_messages([f"{self.config.origin_remote}/{name} exists; pulling it."])
            self.engine.git_for(name).pull_rebase(self.config.origin_remote, name)

        self.prompt.show_messages([f"Created {name} in {path} (parent: {parent})."], "success")
        return path

    def remove_branch(self, name: str, confirmed: bool = False) -> Optional[str]:
        """Delete branch name, its worktree and its origin mirror.

        Returns the command that recreates the branch, or None when the user
        declined.
        """
        main = self.config.main_branch
        if name == main:
            raise FatalUserError(f"Refusing to remove {main}.")
        self._require_local(name)

        reasons: List[str] = []
        ahead, _ = self.divergence.ahead_behind(name, main)
        if ahead:
            reasons.append(f"{name} has {ahead} commit(s) that are not in {main}.")
        if self._is_dirty(name):
            reasons.append(f"{name} has uncommitted changes.")
        if reasons and not confirmed:
            self.prompt.show_messages(reasons, "warning")
            if not self.prompt.confirm_remove_branch(name, reasons):
                self.prompt.show_messages([f"Kept {name}."])
                return None

        head = self.git_manager.rev_parse(f"refs/heads/{name}")
        if self.registry.has_worktree(name):
            self.git_manager.remove_worktree(self.registry.root_of(name))
        self.git_manager.delete_branch(name)
        if self.divergence.remote_branch_exists(name):
            self.git_manager.delete_remote_branch(self.config.origin_remote, name)
        self.store.remove(name)
        self.registry.refresh()

        undo = f"gee-rebase make-branch {name} {head}"
        self.prompt.show_messages([f"Removed {name}. To undo: {undo}"], "success")
        return undo

    # --- Parentage ---
    def get_parent(self, branch: Optional[str] = None) -> str:
        return self.store.get_parent(self._branch_or_current(branch))

    def set_parent(self, parent: str, branch: Optional[str] = None) -> None:
        branch = self._branch_or_current(branch)
        if not parent:
            raise FatalUserError("Parent must not be empty.")
        if parent == branch:
            raise FatalUserError(f"{branch} cannot be its own parent.")
        if branch == self.config.main_branch and parent != self.config.upstream_main:
            raise FatalUserError(f"The parent of {branch} is always {self.config.upstream_main}.")
        if not is_upstream_ref(parent):
            self._require_local(parent)
            if branch in self.chain_builder.chain_for(parent):
                raise FatalUserError(f"{parent} descends from {branch}; making it the parent would create a cycle.")
            merge_base = self.git_manager.merge_base(parent, branch)
        else:
            merge_base = None
        self.store.set_parent(branch, parent, merge_base=merge_base)

    # --- Pull requests and squash merges ---
    def pr_checkout(self, number: int) -> Path:
        """Check out upstream pull request number as branch pr_<number>."""
        ref = f"refs/pull/{number}/head"
        self.git_manager.fetch_remote(self.config.upstream_remote, ref)
        sha = self.git_manager.rev_parse("FETCH_HEAD")
        if sha is None:
            raise NotFoundError(f"Could not fetch {ref} from {self.config.upstream_remote}.")
        return self.make_branch(f"pr_{number}", sha=sha, parent=f"{self.config.upstream_remote}/{ref}")

    def mark_unsquashed(self, branch: Optional[str] = None) -> str:
        branch = self._branch_or_current(branch)
        self._require_local(branch)
        tag = CheckpointManager(self.git_manager).create_unsquashed(branch)
        self.prompt.show_messages([f"Tagged the head of {branch} as {tag}."])
        return tag

    def finish_squash_merge(self, branch: Optional[str] = None) -> List[RebaseResult]:
        """Reset a squash-merged branch to upstream and carry its descendants over."""
        branch = self._branch_or_current(branch)
        if branch == self.config.main_branch:
            raise FatalUserError(f"{branch} cannot be squash-merged into itself.")
        gm = self.engine.git_for(branch)
        if gm.has_uncommitted_changes():
            raise UncommittedChangesError(f"{branch} has uncommitted changes. Commit all changes and try again.")

        if CheckpointManager(gm).get_unsquashed(branch) is None:
            self.mark_unsquashed(branch)
        gm.fetch_remote(self.config.upstream_remote)
        gm.checkout_reset_branch(branch, self.config.upstream_main)
        gm.push(self.config.origin_remote, f"+{branch}")
        return self.propagator.propagate(branch)

    # --- Housekeeping ---
    def lsbranches(self) -> List[BranchStatus]:
        statuses = []
        for name in self.git_manager.list_local_branches():
            if name == self.config.main_branch:
                continue
            parent = self.store.get_parent(name)
            if self._comparable(parent) is None:
                statuses.append(BranchStatus(branch=name, parent=parent))
                continue
            statuses.append(self.divergence.status(name, parent))
        return statuses

    def cleanup(self) -> List[str]:
        """Offer to remove branches that carry nothing beyond their parent."""
        removed = []
        for name in self.git_manager.list_local_branches():
            if name == self.config.main_branch or not self.registry.has_worktree(name):
                continue
            parent = self.store.get_parent(name)
            if self._comparable(parent) is None:
                continue
            ahead, _ = self.divergence.ahead_behind(name, parent)
            if ahead or self._is_dirty(name):
                continue
            reasons = [f"{name} has no commits beyond {parent} and no local changes."]
            if self.prompt.confirm_remove_branch(name, reasons) and self.remove_branch(name, confirmed=True):
                removed.append(name)
        return removed

    def repair(self) -> List[str]:
        """Fix drift between git's state and the parents file.

        Returns a description of every change made.
        """
        actions: List[str] = []

        for entry in self.registry.entries():
            gm = self.git_factory(entry.path)
            if gm.is_rebase_in_progress() and self.prompt.confirm_abort_rebase(entry.branch):
                gm.abort_rebase()
                actions.append(f"Aborted the rebase in progress on {entry.branch}")

        local = self.git_manager.list_local_branches()
        for name in local:
            if self.registry.has_worktree(name):
                continue
            path = self.config.branch_dir(name)
            if path.exists():
                logger.warning(f"{name} has no worktree but {path} exists; leaving it alone")
                continue
            self.git_manager.add_worktree(path, name, create=False)
            actions.append(f"Created worktree {path} for {name}")
        self.registry.refresh()

        known = set(local)
        for name in self.store.branches():
            if name not in known:
                self.store.remove(name)
                actions.append(f"Forgot {name}, which no longer exists")

        guesses = {}
        for name in local:
            if self.store.has_record(name):
                continue
            if name == self.config.main_branch:
                guesses[name] = self.config.upstream_main
            else:
                guesses[name], _ = self._guess_parent(name, local)
        # Guess everything first; set_parent walks ancestors and would fill gaps with main.
        for name, parent in guesses.items():
            self.set_parent(parent, name)
            actions.append(f"Guessed parent of {name}: {parent}")

        for action in actions:
            logger.info(action)
        return actions

    def _guess_parent(self, branch: str, local: List[str]) -> Tuple[str, int]:
        """Closest local branch whose head is an ancestor of branch, else main."""
        descendants = self.store.all_children_of(branch)
        best: Tuple[str, int] = (self.config.main_branch, -1)
        for candidate in sorted(local):
            if candidate == branch or candidate in descendants:
                continue
            if not self.git_manager.is_ancestor(candidate, branch):
                continue
            if candidate != self.config.main_branch and self.git_manager.is_ancestor(branch, candidate):
                continue
            distance = len(self.git_manager.rev_list(f"{candidate}..{branch}"))
            if best[1] < 0 or distance < best[1]:
                best = (candidate, distance)
        return best
