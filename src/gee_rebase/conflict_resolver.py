"""
Conflict resolution handling for a stalled rebase.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .conflict_prompt_interface import ConflictAction, ConflictPrompt, NonInteractiveConflictPrompt
from .git_manager import GitManager
from .models import ConflictEntry, ConflictResolutionError, GitRepositoryError, ResolutionOutcome


logger = logging.getLogger(__name__)


# Two-letter `git status --porcelain` codes that mean "unmerged".
CONFLICT_LABELS = {
    "DD": "both deleted",
    "AU": "added by us",
    "UD": "deleted by them",
    "UA": "added by them",
    "DU": "deleted by us",
    "AA": "both added",
    "UU": "both modified",
}

OURS_STAGE = "2"
THEIRS_STAGE = "3"


def decode_status_line(line: str) -> Optional[ConflictEntry]:
    """Return a ConflictEntry for an unmerged porcelain line, None for anything else."""
    if len(line) < 4:
        return None
    code = line[:2]
    label = CONFLICT_LABELS.get(code)
    if label is None:
        return None
    path = line[3:]
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1].replace("\\\"", "\"").replace("\\\\", "\\")
    return ConflictEntry(path=path, code=code, label=label)


class ConflictResolver:
    """Walks the user through each stalled step of a rebase, file by file.

    Requires a GitManager bound to the worktree where the rebase is stalled.
    `restart` is supplied by the rebase engine and starts the rebase over as an
    interactive one.
    """

    def __init__(
        self,
        git_manager: GitManager,
        conflict_prompt: ConflictPrompt = None,
        gui_merge_tool: str = "meld",
        restart: Optional[Callable[[], None]] = None,
    ) -> None:
        self.gm = git_manager
        self.conflict_prompt = conflict_prompt or NonInteractiveConflictPrompt()
        self.gui_merge_tool = gui_merge_tool
        self.restart = restart

    def analyze_conflicts(self) -> List[ConflictEntry]:
        conflicts = []
        for line in self.gm.get_status_porcelain():
            entry = decode_status_line(line)
            if entry is None:
                logger.debug(f"{line!r}: no conflicts")
                continue
            conflicts.append(entry)
        return conflicts

    def _describe(self, ref: str) -> Optional[str]:
        sha = self.gm.rev_parse(ref)
        if sha is None:
            return None
        return f"{sha[:10]} {self.gm.get_commit_subject(sha) or ''}".rstrip()

    def resolve(self, branch: str) -> ResolutionOutcome:
        """Run until the rebase finishes, is aborted, or cannot make progress."""
        while self.gm.is_rebase_in_progress():
            status = self.gm.get_status_porcelain()
            if not status:
                self.conflict_prompt.show_messages(["Nothing to commit in this step; skipping the commit."])
                skipped, _ = self.gm.skip_rebase_commit()
                if not skipped and self.gm.is_rebase_in_progress() and not self.gm.get_status_porcelain():
                    self.conflict_prompt.show_messages(
                        [f"Rebase of {branch} is stalled: the empty commit could not be skipped."], "bold yellow"
                    )
                    return ResolutionOutcome.STALLED
                continue

            conflicts = self.analyze_conflicts()
            if not conflicts:
                ok, files = self.gm.continue_rebase()
                if not ok and not files and self.gm.is_rebase_in_progress():
                    self.conflict_prompt.show_messages(
                        [f"Rebase of {branch} is stalled but git reports no conflicted files."], "bold yellow"
                    )
                    return ResolutionOutcome.STALLED
                continue

            self.conflict_prompt.show_step(
                branch, self._describe("HEAD") or "HEAD", self._describe("REBASE_HEAD"), conflicts
            )

            hand_merged: List[str] = []
            outcome = self._resolve_step(conflicts, hand_merged)
            if outcome is ResolutionOutcome.ABORTED:
                return outcome
            if outcome is None:
                # Shell, restart or skip: state changed under us, look again.
                continue

            # A side taken whole is trusted; only hand-merged files are rescanned.
            leftover = [path for path in hand_merged if self.gm.file_has_conflict_markers(path)]
            if leftover:
                self.conflict_prompt.show_messages(
                    [f"Conflict markers still present in: {', '.join(leftover)}"], "bold yellow"
                )
                return ResolutionOutcome.STALLED
            self.gm.continue_rebase()

        logger.info(f"No rebase in progress for {branch}")
        return ResolutionOutcome.RESOLVED

    def _resolve_step(self, conflicts: List[ConflictEntry], hand_merged: List[str]) -> Optional[ResolutionOutcome]:
        """Resolve every file of one step.

        Paths settled through a merge tool are appended to hand_merged.

        Returns RESOLVED when all files were handled, ABORTED after an abort, and
        None when the step was left for the outer loop to re-examine.
        """
        for entry in conflicts:
            while True:
                action = self.conflict_prompt.choose_action(entry)
                logger.debug(f"{entry.path}: {action.value}")

                if action is ConflictAction.KEEP_OLD:
                    self._take_side(entry, OURS_STAGE, "ours")
                    break
                if action is ConflictAction.KEEP_NEW:
                    self._take_side(entry, THEIRS_STAGE, "theirs")
                    break
                if action is ConflictAction.MERGE_TOOL:
                    self.gm.run_git_interactive("mergetool", entry.path)
                    if self._merged_cleanly(entry):
                        hand_merged.append(entry.path)
                        break
                    continue
                if action is ConflictAction.GUI_TOOL:
                    tool = self.gm.get_config("merge.guitool") or self.gui_merge_tool
                    self.gm.run_git_interactive("mergetool", f"--tool={tool}", "--no-prompt", entry.path)
                    if self._merged_cleanly(entry):
                        hand_merged.append(entry.path)
                        break
                    continue
                if action is ConflictAction.VIEW:
                    try:
                        self.conflict_prompt.show_patch(self.gm.show_commit("REBASE_HEAD"))
                    except GitRepositoryError as e:
                        self.conflict_prompt.show_messages([f"Cannot show the patch: {e}"], "bold yellow")
                    continue
                if action is ConflictAction.SHELL:
                    self.conflict_prompt.open_shell(self.gm.working_dir)
                    return None
                if action is ConflictAction.RESTART:
                    if self.restart is None:
                        self.conflict_prompt.show_messages(["Restarting is not available here."], "bold yellow")
                        continue
                    if not self.conflict_prompt.confirm_restart():
                        continue
                    self.restart()
                    return None
                if action is ConflictAction.SKIP_COMMIT:
                    self.gm.skip_rebase_commit()
                    return None
                if action is ConflictAction.ABORT:
                    self.gm.abort_rebase()
                    self.conflict_prompt.show_messages(["Rebase aborted; the branch is back where it started."])
                    return ResolutionOutcome.ABORTED
                raise ConflictResolutionError(f"Unhandled conflict action {action!r}")
        return ResolutionOutcome.RESOLVED

    def _take_side(self, entry: ConflictEntry, stage: str, side: str) -> None:
        """Keep one side of a conflict; a side that deleted the file deletes it."""
        stages = {e["stage"] for e in self.gm.get_unmerged_index_entries(entry.path)}
        if stage in stages:
            self.gm.checkout_stage(entry.path, side)
            self.gm.add_paths([entry.path])
        else:
            self.gm.remove_path(entry.path)

    def _merged_cleanly(self, entry: ConflictEntry) -> bool:
        if self.gm.file_has_conflict_markers(entry.path):
            self.conflict_prompt.show_messages([f"{entry.path} still contains conflict markers."], "bold yellow")
            return False
        if self.gm.get_unmerged_index_entries(entry.path):
            if (self.gm.working_dir / entry.path).exists():
                self.gm.add_paths([entry.path])
            else:
                self.gm.remove_path(entry.path)
        return True
