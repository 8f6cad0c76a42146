"""
Checkpoint tags that give the user an undo path around rewriting operations.
"""

from __future__ import annotations

import logging
from typing import Optional

from .git_manager import GitManager
from .models import GitRepositoryError, NotFoundError

logger = logging.getLogger(__name__)


REBASE_BACKUP_SUFFIX = ".REBASE_BACKUP"
UNSQUASHED_SUFFIX = "-unsquashed"


def rebase_backup_tag(branch: str) -> str:
    return f"{branch}{REBASE_BACKUP_SUFFIX}"


def unsquashed_tag(branch: str) -> str:
    return f"{branch}{UNSQUASHED_SUFFIX}"


class CheckpointManager:
    """Create, inspect and restore the per-branch checkpoint tags.

    Tags are force-updated on every attempt, so there is at most one of each
    kind per branch.
    """

    def __init__(self, git_manager: GitManager) -> None:
        self.gm = git_manager

    def create_rebase_backup(self, branch: str) -> str:
        """Tag the current head of branch before it gets rewritten."""
        tag = rebase_backup_tag(branch)
        try:
            self.gm.tag_force(tag, "HEAD")
        except GitRepositoryError as e:
            logger.error(f"Failed to create checkpoint for {branch}: {e}")
            raise
        return tag

    def create_unsquashed(self, branch: str) -> str:
        tag = unsquashed_tag(branch)
        self.gm.tag_force(tag, branch)
        return tag

    def get_rebase_backup(self, branch: str) -> Optional[str]:
        return self.gm.rev_parse(f"refs/tags/{rebase_backup_tag(branch)}")

    def get_unsquashed(self, branch: str) -> Optional[str]:
        return self.gm.rev_parse(f"refs/tags/{unsquashed_tag(branch)}")

    def undo_hint(self, branch: str) -> str:
        return f"To undo: git checkout {branch}; git reset --hard {rebase_backup_tag(branch)}"

    def restore_rebase_backup(self, branch: str) -> None:
        """Hard-reset the checked-out branch to its checkpoint."""
        tag = rebase_backup_tag(branch)
        if self.get_rebase_backup(branch) is None:
            raise NotFoundError(f"No checkpoint tag {tag} exists.")
        if self.gm.is_rebase_in_progress():
            logger.warning(f"Rebase in progress in {self.gm.repo_path}. Aborting it before restoring {tag}.")
            self.gm.abort_rebase()
        self.gm.reset_hard(tag)
        logger.info(f"Restored {branch} from {tag}")
