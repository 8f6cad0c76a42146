"""
UI-agnostic prompt interface for user interactions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List


logger = logging.getLogger(__name__)


class UserPrompt(ABC):
    """Abstract interface for yes/no decisions made by top-level operations."""

    @abstractmethod
    def show_messages(self, messages: List[str], style: str = "") -> None:
        """Display user-facing progress or warning messages.

        Args:
            messages: Lines to display
            style: Optional style hint for UI implementations ("warning", "error", "success")
        """
        pass

    @abstractmethod
    def confirm_rebase_with_open_pr(self, branch: str, pr_numbers: List[int]) -> bool:
        """
        Ask whether to rebase a branch that reviewers are looking at.

        Returns:
            True to rebase anyway (default is no)
        """
        pass

    @abstractmethod
    def confirm_integrate_remote(self, branch: str, remote_ref: str, commits_ahead: int) -> bool:
        """
        Ask whether to rebase a branch onto its remote mirror, which has commits the local branch lacks.

        Returns:
            True to integrate the remote commits (default is yes)
        """
        pass

    @abstractmethod
    def confirm_propagate_squash(self, branch: str, descendants: List[str]) -> bool:
        """
        Ask whether to rebase descendants of a squash-merged branch now.

        Returns:
            True to rebase them (default is yes)
        """
        pass

    @abstractmethod
    def confirm_remove_branch(self, branch: str, reasons: List[str]) -> bool:
        """
        Ask whether to delete a branch that still carries work.

        Returns:
            True to delete it (default is no)
        """
        pass

    @abstractmethod
    def confirm_abort_rebase(self, branch: str) -> bool:
        """
        Ask whether to abort a rebase left in progress by an earlier run.

        Returns:
            True to abort it (default is no)
        """
        pass


class AutoYesPrompt(UserPrompt):
    """Prompt for unattended runs: every confirmation is answered yes."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def show_messages(self, messages: List[str], style: str = "") -> None:
        for message in messages:
            self.messages.append(message)
            if style in ("warning", "error"):
                logger.warning(message)
            else:
                logger.info(message)

    def confirm_rebase_with_open_pr(self, branch: str, pr_numbers: List[int]) -> bool:
        return True

    def confirm_integrate_remote(self, branch: str, remote_ref: str, commits_ahead: int) -> bool:
        return True

    def confirm_propagate_squash(self, branch: str, descendants: List[str]) -> bool:
        return True

    def confirm_remove_branch(self, branch: str, reasons: List[str]) -> bool:
        return True

    def confirm_abort_rebase(self, branch: str) -> bool:
        return True
