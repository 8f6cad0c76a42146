"""
CLI-specific implementation of the prompt interface.
"""

from __future__ import annotations

from typing import List
import click
from rich.console import Console
from rich.panel import Panel

from .prompt_interface import UserPrompt


STYLES = {
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "dim": "dim",
}


class CliPrompt(UserPrompt):
    """CLI implementation of the prompt interface using click and rich."""

    def __init__(self, console: Console = None, assume_yes: bool = False):
        self.console = console or Console()
        self.assume_yes = assume_yes

    def _confirm(self, question: str, default: bool) -> bool:
        if self.assume_yes:
            self.console.print(f"{question} yes", style="dim", markup=False)
            return True
        return click.confirm(question, default=default)

    def show_messages(self, messages: List[str], style: str = "") -> None:
        rich_style = STYLES.get(style, style or None)
        for message in messages:
            self.console.print(message, style=rich_style, markup=False, highlight=False)

    def confirm_rebase_with_open_pr(self, branch: str, pr_numbers: List[int]) -> bool:
        prs = ", ".join(f"#{n}" for n in pr_numbers)
        panel = Panel(
            f"Branch [green]{branch}[/green] has open pull request(s): [cyan]{prs}[/cyan]\n\n"
            "Rebasing it rewrites the commits reviewers have already seen, which makes\n"
            "it harder for them to tell what changed since their last review.",
            title="Open Pull Request",
            border_style="yellow",
        )
        self.console.print(panel)
        return self._confirm(f"Rebase {branch} anyway?", default=False)

    def confirm_integrate_remote(self, branch: str, remote_ref: str, commits_ahead: int) -> bool:
        panel = Panel(
            f"[yellow]{remote_ref}[/yellow] is {commits_ahead} commit(s) ahead of your local [green]{branch}[/green].\n\n"
            "This can happen if:\n"
            "  1. you pushed this branch from another machine, or\n"
            "  2. a collaborator pushed commits to your fork.",
            title="Remote Mirror Is Ahead",
            border_style="yellow",
        )
        self.console.print(panel)
        return self._confirm(f"Rebase {branch} onto {remote_ref}?", default=True)

    def confirm_propagate_squash(self, branch: str, descendants: List[str]) -> bool:
        self.console.print(
            f"\nBranches descending from {branch} will conflict on their next update unless they are rebased now:",
            style="bold yellow",
        )
        for d in descendants:
            self.console.print(f"  • {d}")
        return self._confirm("Rebase them onto the squashed commit?", default=True)

    def confirm_remove_branch(self, branch: str, reasons: List[str]) -> bool:
        self.console.print(f"\nBranch {branch} still carries work:", style="bold yellow")
        for reason in reasons:
            self.console.print(f"  • {reason}")
        return self._confirm(f"Remove {branch} anyway?", default=False)

    def confirm_abort_rebase(self, branch: str) -> bool:
        self.console.print(f"\nA rebase is in progress in {branch}.", style="bold yellow")
        return self._confirm("Abort it?", default=False)
