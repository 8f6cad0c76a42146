"""
UI-agnostic interface for conflict resolution prompting.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .models import ConflictEntry


logger = logging.getLogger(__name__)


class ConflictAction(Enum):
    """What to do with one conflicted file."""

    KEEP_OLD = "keep_old"
    KEEP_NEW = "keep_new"
    MERGE_TOOL = "merge_tool"
    GUI_TOOL = "gui_tool"
    RESTART = "restart"
    SHELL = "shell"
    VIEW = "view"
    SKIP_COMMIT = "skip_commit"
    ABORT = "abort"


class ConflictPrompt(ABC):
    """Abstract interface for prompting users during conflict resolution."""

    @abstractmethod
    def show_messages(self, messages: List[str], style: str = "") -> None:
        """Display generic user-facing messages from core logic.

        Args:
            messages: List of strings to display
            style: Optional style hint for UI implementations
        """
        pass

    @abstractmethod
    def show_step(
        self,
        branch: str,
        onto: str,
        replaying: Optional[str],
        conflicts: List[ConflictEntry],
    ) -> None:
        """
        Describe the stalled rebase step before asking about individual files.

        Args:
            branch: Branch being rebased
            onto: "<sha> <subject>" of the commit being rebased onto
            replaying: "<sha> <subject>" of the commit being replayed, if known
            conflicts: Conflicted files in this step
        """
        pass

    @abstractmethod
    def choose_action(self, entry: ConflictEntry) -> ConflictAction:
        """
        Ask what to do about one conflicted file.

        Returns:
            The chosen ConflictAction
        """
        pass

    @abstractmethod
    def show_patch(self, text: str) -> None:
        """Show the patch of the commit being replayed."""
        pass

    @abstractmethod
    def confirm_restart(self) -> bool:
        """Confirm throwing away this rebase and starting an interactive one."""
        pass

    @abstractmethod
    def open_shell(self, directory: Path) -> None:
        """Hand the terminal to the user in directory until they exit."""
        pass


class NonInteractiveConflictPrompt(ConflictPrompt):
    """Unattended resolution: every conflict takes the incoming version."""

    def show_messages(self, messages: List[str], style: str = "") -> None:
        for message in messages:
            logger.info(message)

    def show_step(
        self,
        branch: str,
        onto: str,
        replaying: Optional[str],
        conflicts: List[ConflictEntry],
    ) -> None:
        logger.info(f"Resolving {len(conflicts)} conflict(s) in {branch} while replaying {replaying} onto {onto}")

    def choose_action(self, entry: ConflictEntry) -> ConflictAction:
        logger.info(f"{entry.path} ({entry.label}): taking the new version")
        return ConflictAction.KEEP_NEW

    def show_patch(self, text: str) -> None:
        pass

    def confirm_restart(self) -> bool:
        return False

    def open_shell(self, directory: Path) -> None:
        pass
