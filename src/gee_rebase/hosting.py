"""
Read-only queries against the code hosting platform through the `gh` CLI.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)


class PullRequestLookup:
    """Answers "does this branch have an open pull request?".

    The answer only gates a confirmation prompt, so every failure degrades to
    "no open pull request" with a warning instead of raising.
    """

    def __init__(self, gh_binary: str = "gh") -> None:
        self.gh_binary = gh_binary

    def _run(self, args: List[str], cwd: Optional[Path]) -> str:
        try:
            result = subprocess.run(
                [self.gh_binary, *args],
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise RuntimeError(f"{self.gh_binary} {' '.join(args)} failed: {stderr or e}") from e
        return result.stdout

    def open_pr_numbers(self, branch: str, cwd: Optional[Path] = None) -> List[int]:
        args = ["pr", "list", "--head", branch, "--state", "open", "--json", "number"]
        try:
            data = json.loads(self._run(args, cwd) or "[]")
        except (RuntimeError, FileNotFoundError, json.JSONDecodeError) as e:
            logger.warning(f"Could not check for open pull requests on {branch}: {e}")
            return []
        numbers = []
        for pr in data:
            if isinstance(pr, dict) and isinstance(pr.get("number"), int):
                numbers.append(pr["number"])
        return sorted(numbers)


class NoPullRequests(PullRequestLookup):
    """Lookup used when there is no hosting platform to ask."""

    def open_pr_numbers(self, branch: str, cwd: Optional[Path] = None) -> List[int]:
        return []
