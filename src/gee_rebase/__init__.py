"""
gee-rebase - keep a forest of stacked branches, one worktree per branch, rebased on each other.

Every branch records its parent branch. Updating a branch rebases it onto its
parent inside the branch's own worktree, with a checkpoint tag before and a
forced push to the personal fork after.
"""

__version__ = "0.1.0"

from .branch_orchestrator import BranchOrchestrator
from .chain_builder import ChainBuilder
from .config import GeeConfig
from .conflict_resolver import ConflictResolver
from .git_manager import GitManager
from .models import ParentageRecord, RebasePhase, RebaseResult, WorktreeEntry
from .parentage_store import ParentageStore
from .rebase_engine import RebaseEngine
from .squash_propagation import SquashPropagator
from .worktree_registry import WorktreeRegistry

__all__ = [
    "BranchOrchestrator",
    "ChainBuilder",
    "GeeConfig",
    "ConflictResolver",
    "GitManager",
    "ParentageRecord",
    "RebasePhase",
    "RebaseResult",
    "WorktreeEntry",
    "ParentageStore",
    "RebaseEngine",
    "SquashPropagator",
    "WorktreeRegistry",
]
