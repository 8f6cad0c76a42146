"""
CLI-specific implementation of the conflict prompt interface.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import List, Optional
import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .conflict_prompt_interface import ConflictAction, ConflictPrompt
from .models import ConflictEntry


CHOICES = {
    "o": ConflictAction.KEEP_OLD,
    "n": ConflictAction.KEEP_NEW,
    "m": ConflictAction.MERGE_TOOL,
    "g": ConflictAction.GUI_TOOL,
    "p": ConflictAction.RESTART,
    "s": ConflictAction.SHELL,
    "v": ConflictAction.VIEW,
    "k": ConflictAction.SKIP_COMMIT,
    "a": ConflictAction.ABORT,
}

HELP_LINES = [
    "(O)ld    keep the version from the branch being rebased onto",
    "(N)ew    keep the version from the commit being replayed",
    "(M)erge  resolve with your configured text merge tool",
    "(G)ui    resolve with a graphical merge tool",
    "(P)ick   abort and restart as an interactive rebase",
    "(S)hell  open a shell to fix things by hand",
    "(V)iew   show the patch being replayed",
    "s(K)ip   drop this commit entirely",
    "(A)bort  abort the rebase and restore the branch",
]

SHELL_HELP = [
    "You are in a subshell inside the stalled rebase.",
    "Useful commands:",
    "  git status                  see what is conflicted",
    "  git add <file>              mark a file as resolved",
    "  git rebase --continue       move on to the next commit",
    "  git rebase --abort          give up and restore the branch",
    "Type 'exit' to return to conflict resolution.",
]


class CliConflictPrompt(ConflictPrompt):
    """CLI implementation of the conflict prompt interface using click and rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def show_messages(self, messages: List[str], style: str = "") -> None:
        for message in messages:
            self.console.print(message, style=style or None, markup=False, highlight=False)

    def show_step(
        self,
        branch: str,
        onto: str,
        replaying: Optional[str],
        conflicts: List[ConflictEntry],
    ) -> None:
        self.console.print(f"\n🔥 **MERGE CONFLICT** while rebasing {branch}", style="bold red")
        self.console.print(f"Onto:      {onto}", markup=False)
        self.console.print(f"Replaying: {replaying or '(unknown)'}", markup=False)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Status", style="yellow")
        for entry in conflicts:
            table.add_row(entry.path, entry.label)
        self.console.print(table)

    def _print_help(self) -> None:
        self.console.print(Panel("\n".join(HELP_LINES), title="Options", title_align="left", border_style="blue"))

    def choose_action(self, entry: ConflictEntry) -> ConflictAction:
        while True:
            answer = click.prompt(
                f"{entry.path} ({entry.label}): Keep (O)ld, (N)ew, (M)erge, (G)ui, (P)ick, (S)hell, (V)iew, s(K)ip, or (A)bort?",
                default="",
                show_default=False,
            ).strip().lower()
            action = CHOICES.get(answer[:1]) if answer else None
            if action is not None:
                return action
            self._print_help()

    def show_patch(self, text: str) -> None:
        click.echo_via_pager(text)

    def confirm_restart(self) -> bool:
        return click.confirm(
            "Abort this rebase and start over with an interactive rebase?", default=False
        )

    def open_shell(self, directory: Path) -> None:
        self.console.print(Panel("\n".join(SHELL_HELP), title="Recovery Shell", title_align="left", border_style="yellow"))
        shell = os.environ.get("SHELL") or "bash"
        env = dict(os.environ)
        env["GEE_REBASE_SHELL"] = "1"
        subprocess.run([shell], cwd=str(directory), env=env, check=False)
        self.console.print("Back from the recovery shell, checking rebase state...", style="dim")
