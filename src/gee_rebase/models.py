"""
Data models for the branch parentage and synchronization engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


UPSTREAM_PREFIX = "upstream/"


def is_upstream_ref(ref: str) -> bool:
    """Return True for symbolic references into the read-only upstream remote."""
    return ref.startswith(UPSTREAM_PREFIX)


@dataclass
class ParentageRecord:
    """One line of the parents file."""

    branch: str
    parent: str
    merge_base: str = ""


@dataclass
class WorktreeEntry:
    """A branch and the working directory it is checked out in."""

    branch: str
    path: Path

    def __post_init__(self) -> None:
        self.path = Path(self.path)


class RebasePhase(Enum):
    """States of a single rebase attempt."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    CONFLICT_SUSPENDED = "conflict_suspended"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    FAILED = "failed"


class ResolutionOutcome(Enum):
    """How the conflict resolution loop finished."""

    RESOLVED = "resolved"
    ABORTED = "aborted"
    STALLED = "stalled"


@dataclass
class RebaseResult:
    """Outcome of RebaseEngine.rebase()."""

    branch: str
    parent: str
    onto: Optional[str] = None
    phase: RebasePhase = RebasePhase.IDLE
    transitions: List[RebasePhase] = field(default_factory=lambda: [RebasePhase.IDLE])
    parent_head: Optional[str] = None
    new_head: Optional[str] = None
    message: str = ""
    record_merge_base: bool = True

    def move_to(self, phase: RebasePhase) -> None:
        self.phase = phase
        self.transitions.append(phase)

    @property
    def ok(self) -> bool:
        return self.phase == RebasePhase.SUCCEEDED

    @property
    def skipped(self) -> bool:
        return self.phase == RebasePhase.IDLE


@dataclass
class ConflictEntry:
    """A path reported by `git status --porcelain` during a stalled rebase."""

    path: str
    code: str
    label: str


@dataclass
class BranchStatus:
    """Divergence summary of a branch, used by status listings."""

    branch: str
    parent: str
    ahead: int = 0
    behind: int = 0
    mirror_ahead: int = 0
    mirror_behind: int = 0
    has_mirror: bool = False


class GeeError(Exception):
    """Base exception for branch management operations."""

    pass


class FatalUserError(GeeError):
    """An expected condition the user has to fix before retrying."""

    pass


class UncommittedChangesError(FatalUserError):
    """A worktree has changes that a rebase could clobber."""

    pass


class RebaseStalledError(FatalUserError):
    """A rebase is still in progress after the resolution loop gave up."""

    pass


class NotFoundError(GeeError):
    """A branch, worktree or reference does not exist."""

    pass


class GitRepositoryError(GeeError):
    """Exception raised for Git repository related errors."""

    pass


class ConflictResolutionError(GeeError):
    """Exception raised during conflict resolution."""

    pass


class InternalInvariantError(GeeError):
    """State that should be impossible; indicates a bug or an unexpected git interaction."""

    pass


class ParentageGraphError(InternalInvariantError):
    """The recorded parentage is cyclic or deeper than the configured bound."""

    pass
