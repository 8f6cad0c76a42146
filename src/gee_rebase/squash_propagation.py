"""
Rebase descendants of a squash-merged branch onto the squashed commit.

Once a branch's commits have been squashed into one commit upstream, its
children still carry the original commits. Rebasing them normally would replay
those commits on top of the squash and conflict with it. Instead each child is
replayed with `--onto`: only the commits after the pre-squash head (kept as
the `<branch>-unsquashed` tag) are carried over.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from .chain_builder import ChainBuilder
from .checkpoint_manager import unsquashed_tag
from .config import GeeConfig
from .git_manager import GitManager
from .models import NotFoundError, RebaseResult
from .parentage_store import ParentageStore
from .prompt_interface import UserPrompt
from .rebase_engine import RebaseEngine


logger = logging.getLogger(__name__)


class SquashPropagator:
    def __init__(
        self,
        config: GeeConfig,
        store: ParentageStore,
        chain_builder: ChainBuilder,
        engine: RebaseEngine,
        prompt: UserPrompt,
        git_manager: GitManager,
    ) -> None:
        self.config = config
        self.store = store
        self.chain_builder = chain_builder
        self.engine = engine
        self.prompt = prompt
        self.gm = git_manager

    def first_squashed_commit(self, branch: str) -> Optional[str]:
        """Earliest commit of branch that the squash-merge replaced."""
        tag = unsquashed_tag(branch)
        if self.gm.rev_parse(tag) is None:
            raise NotFoundError(f"No {tag} tag; cannot tell which commits were squashed.")
        base = self.gm.merge_base(self.config.upstream_main, tag)
        if base is None:
            raise NotFoundError(f"{tag} shares no history with {self.config.upstream_main}.")
        commits = self.gm.rev_list(f"{base}..{tag}")
        return commits[-1] if commits else None

    def find_descendants(self, branch: str) -> List[str]:
        """Branches that still carry the pre-squash commits, parents first."""
        found: Set[str] = set()
        first = self.first_squashed_commit(branch)
        if first is not None:
            found.update(self.gm.branches_containing_commit(first))
        else:
            logger.info(f"{branch} had no commits of its own to squash")
        found.update(self.store.all_children_of(branch))

        existing = set(self.gm.list_local_branches())
        found = {b for b in found if b in existing and b not in (branch, self.config.main_branch)}
        return self.chain_builder.order(found)

    def propagate(self, branch: str) -> List[RebaseResult]:
        descendants = self.find_descendants(branch)
        if not descendants:
            logger.info(f"No branches descend from {branch}")
            return []

        self.prompt.show_messages(
            [f"{', '.join(descendants)} still contain the pre-squash commits of {branch}."], "warning"
        )
        if not self.prompt.confirm_propagate_squash(branch, descendants):
            self.prompt.show_messages(["Not rebasing descendants; expect conflicts on their next update."], "warning")
            return []

        tag = unsquashed_tag(branch)
        results = []
        for child in descendants:
            results.append(self.engine.rebase(child, tag, onto=branch))
        return results
