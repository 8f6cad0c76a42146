"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError


logger = logging.getLogger(__name__)


CONFLICT_START = "<<<<<<< "
CONFLICT_END = ">>>>>>> "


class GitManager:
    """Runs git commands inside one worktree."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = Path(repo_path or Path.cwd()).resolve()
        self._repo: Optional[Repo] = None

    def _to_repo_relative_str(self, p: Union[str, Path]) -> str:
        """Return a POSIX-style path relative to the worktree root."""
        base = self.working_dir
        pp = Path(p)
        if not pp.is_absolute():
            return pp.as_posix()
        try:
            return pp.resolve().relative_to(base).as_posix()
        except ValueError:
            logger.debug(f"Path '{pp}' not under worktree root '{base}'; passing as-is")
            return pp.as_posix()

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    @property
    def working_dir(self) -> Path:
        return Path(self.repo.working_dir).resolve()

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from current or specified path."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.debug(f"Found Git repository at: {search_path}")
                return repo
            except (InvalidGitRepositoryError, NoSuchPathError):
                search_path = search_path.parent

        raise GitRepositoryError(
            f"No Git repository found at {self.repo_path} or any parent directory"
        )

    # --- Branches and refs ---
    def list_local_branches(self) -> List[str]:
        """List local branch names (full names, including slashes)."""
        try:
            output = self.repo.git.branch("--format=%(refname:short)")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to list local branches: {e}")
        return [ln.strip() for ln in output.splitlines() if ln.strip()]

    def branch_exists(self, branch_name: str) -> bool:
        """Check if a local branch exists."""
        return self.rev_parse(f"refs/heads/{branch_name}") is not None

    def rev_parse(self, ref: str) -> Optional[str]:
        """Return the full commit id for ref, or None if it does not resolve."""
        try:
            value = self.repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}").strip()
        except GitCommandError:
            return None
        return value or None

    def head_sha(self) -> str:
        sha = self.rev_parse("HEAD")
        if sha is None:
            raise GitRepositoryError(f"HEAD does not resolve in {self.repo_path}")
        return sha

    def merge_base(self, left: str, right: str) -> Optional[str]:
        try:
            return self.repo.git.merge_base(left, right).strip() or None
        except GitCommandError:
            return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Return True if `ancestor` is reachable from `descendant`."""
        try:
            self.repo.git.merge_base("--is-ancestor", ancestor, descendant)
            return True
        except GitCommandError as e:
            if e.status == 1:
                return False
            raise GitRepositoryError(f"Ancestor check {ancestor} -> {descendant} failed: {e}")

    def rev_list(self, *args: str) -> List[str]:
        try:
            output = self.repo.git.rev_list(*args)
        except GitCommandError as e:
            raise GitRepositoryError(f"rev-list {' '.join(args)} failed: {e}")
        return [ln.strip() for ln in output.splitlines() if ln.strip()]

    def ahead_behind(self, branch: str, other: str) -> Tuple[int, int]:
        """Return (ahead, behind) counts of branch relative to other."""
        try:
            output = self.repo.git.rev_list("--left-right", "--count", f"{branch}...{other}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to compare {branch} with {other}: {e}")
        left_right = output.strip().split()
        if len(left_right) != 2:
            raise GitRepositoryError(f"Unexpected rev-list output comparing {branch} and {other}: {output!r}")
        return int(left_right[0]), int(left_right[1])

    def branches_containing_commit(self, commit_sha: str) -> List[str]:
        """Return local branches whose history contains the given commit."""
        try:
            output = self.repo.git.branch("--format=%(refname:short)", "--contains", commit_sha)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to list branches containing {commit_sha}: {e}")
        names = []
        for ln in output.splitlines():
            name = ln.strip()
            # Detached worktrees show up as "(HEAD detached at ...)"
            if not name or name.startswith("("):
                continue
            names.append(name)
        return names

    def get_commit_subject(self, commit: str) -> Optional[str]:
        try:
            return self.repo.git.log("-1", "--format=%s", commit).strip() or None
        except GitCommandError:
            return None

    def get_config(self, key: str) -> Optional[str]:
        try:
            return self.repo.git.config("--get", key).strip() or None
        except GitCommandError:
            return None

    # --- Working tree / index cleanliness ---
    def get_status_porcelain(self, untracked_all: bool = False) -> List[str]:
        """Return raw `git status --porcelain` lines (status code columns preserved)."""
        args = ["--porcelain"]
        if untracked_all:
            args.append("--untracked-files=all")
        try:
            output = self.repo.git.status(*args)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to read status in {self.repo_path}: {e}")
        return [ln for ln in output.splitlines() if ln.strip()]

    def has_uncommitted_changes(self) -> bool:
        """Any modified, staged or untracked path counts."""
        return bool(self.get_status_porcelain(untracked_all=True))

    def get_unmerged_index_entries(self, path: Union[str, Path]) -> List[Dict[str, str]]:
        """Return parsed entries from `git ls-files -u -- <path>` for an unmerged path.

        Each entry is a dict with keys: stage, hash, path
        """
        rel = self._to_repo_relative_str(path)
        try:
            output = self.repo.git.ls_files("-u", "--", rel)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to read index entries for {rel}: {e}")
        entries: List[Dict[str, str]] = []
        for line in output.strip().splitlines():
            parts = line.split("\t")
            if len(parts) < 2:
                continue
            mode_hash = parts[0].split()
            if len(mode_hash) >= 3:
                entries.append({"stage": mode_hash[2], "hash": mode_hash[1], "path": parts[1]})
        return entries

    def file_has_conflict_markers(self, path: Union[str, Path]) -> bool:
        """Scan a working-tree file for a leftover merge hunk.

        Only an opening marker followed later by a closing marker counts, so a
        line of equals signs (a Markdown heading underline) is ordinary text.
        """
        full = self.working_dir / self._to_repo_relative_str(path)
        if not full.is_file():
            return False
        text = full.read_text(encoding="utf-8", errors="ignore")
        opened = False
        for line in text.splitlines():
            if line.startswith(CONFLICT_START):
                opened = True
            elif opened and line.startswith(CONFLICT_END):
                return True
        return False

    # --- Conflict resolution primitives ---
    def checkout_stage(self, path: Union[str, Path], side: str) -> None:
        """Take the `ours` or `theirs` version of an unmerged path."""
        rel = self._to_repo_relative_str(path)
        try:
            self.repo.git.checkout(f"--{side}", "--", rel)
            logger.info(f"Took {side} version of {rel}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to check out {side} version of {rel}: {e}")

    def remove_path(self, path: Union[str, Path]) -> None:
        rel = self._to_repo_relative_str(path)
        try:
            self.repo.git.rm("--quiet", "--", rel)
            logger.info(f"Removed {rel}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to remove {rel}: {e}")

    def add_paths(self, paths: Sequence[Union[str, Path]]) -> None:
        """Stage the given paths."""
        str_paths = [self._to_repo_relative_str(p) for p in paths]
        try:
            self.repo.git.add("--", *str_paths)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to stage {str_paths}: {e}")

    def show_commit(self, commit: str) -> str:
        try:
            return self.repo.git.show("--stat", "--patch", commit)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to show {commit}: {e}")

    # --- Rebase ---
    def start_rebase(
        self, upstream: str, branch: Optional[str] = None, onto: Optional[str] = None
    ) -> Tuple[bool, List[str]]:
        """
        Start a rebase operation.

        Returns:
            Tuple of (success, conflict_files)
        """
        args = ["--no-autostash"]
        if onto:
            args += ["--onto", onto]
        args.append(upstream)
        if branch:
            args.append(branch)
        logger.debug(f"Called 'git rebase {' '.join(args)}' in {self.repo_path}")
        try:
            self.repo.git.rebase(*args)
        except GitCommandError as e:
            logger.warning(f"Rebase stopped: {e}")
            return False, self.get_conflict_files()
        logger.info(f"Rebased {branch or 'HEAD'} onto {onto or upstream}")
        return True, []

    def pull_rebase(self, remote: str, ref: str) -> Tuple[bool, List[str]]:
        """Rebase the checked-out branch onto a ref fetched from a remote."""
        logger.debug(f"Called 'git pull --rebase --no-autostash {remote} {ref}' in {self.repo_path}")
        try:
            self.repo.git.pull("--rebase", "--no-autostash", remote, ref)
        except GitCommandError as e:
            logger.warning(f"Pull --rebase stopped: {e}")
            return False, self.get_conflict_files()
        logger.info(f"Pulled {remote} {ref} with rebase")
        return True, []

    def get_conflict_files(self) -> List[str]:
        """Return unresolved paths relative to the worktree root."""
        try:
            output = self.repo.git.diff("--name-only", "--diff-filter=U")
        except GitCommandError as e:
            logger.error(f"Error getting conflict files: {e}")
            return []
        return [f.strip() for f in output.splitlines() if f.strip()]

    def continue_rebase(self) -> Tuple[bool, List[str]]:
        """Continue a rebase after conflicts are resolved."""
        try:
            # Avoid interactive editor prompt
            with self.repo.git.custom_environment(GIT_EDITOR="true"):
                self.repo.git.rebase("--continue")
        except GitCommandError as e:
            logger.warning(f"Rebase --continue stopped: {e}")
            return False, self.get_conflict_files()
        logger.info("Rebase continued successfully")
        return True, []

    def skip_rebase_commit(self) -> Tuple[bool, List[str]]:
        try:
            self.repo.git.rebase("--skip")
        except GitCommandError as e:
            logger.warning(f"Rebase --skip stopped: {e}")
            return False, self.get_conflict_files()
        logger.info("Skipped commit")
        return True, []

    def abort_rebase(self) -> None:
        """Abort a rebase operation."""
        try:
            self.repo.git.rebase("--abort")
            logger.info("Rebase aborted successfully")
        except GitCommandError as e:
            logger.error(f"Failed to abort rebase: {e}")
            raise GitRepositoryError(f"Failed to abort rebase: {e}")

    def is_rebase_in_progress(self) -> bool:
        """Check if a rebase is currently in progress."""
        git_dir = Path(self.repo.git_dir)
        return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()

    def rebase_onto_commit(self) -> Optional[str]:
        """Commit id an in-progress rebase is replaying onto, read from git's state files."""
        git_dir = Path(self.repo.git_dir)
        for state_dir in ("rebase-merge", "rebase-apply"):
            onto_file = git_dir / state_dir / "onto"
            if onto_file.is_file():
                return onto_file.read_text(encoding="utf-8").strip() or None
        return None

    # --- Tags, resets, checkouts ---
    def tag_force(self, name: str, ref: str = "HEAD") -> None:
        try:
            self.repo.git.tag("-f", name, ref)
            logger.info(f"Tagged {ref} as {name}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to create tag {name}: {e}")

    def reset_hard(self, ref: str) -> None:
        try:
            self.repo.git.reset("--hard", ref)
            logger.info(f"Reset {self.repo_path} to {ref}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to reset to {ref}: {e}")

    def checkout_reset_branch(self, branch: str, start: str) -> None:
        """`git checkout -B branch start`."""
        try:
            self.repo.git.checkout("-B", branch, start)
            logger.info(f"Reset branch {branch} to {start}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to reset {branch} to {start}: {e}")

    def delete_branch(self, branch_name: str) -> None:
        """Delete a local branch (force)."""
        try:
            self.repo.git.branch("-D", branch_name)
            logger.info(f"Deleted branch {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error deleting branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to delete branch {branch_name}: {e}")

    # --- Remotes ---
    def fetch_remote(self, remote_name: str = "origin", *refspecs: str) -> None:
        """Fetch updates from a remote."""
        try:
            self.repo.git.fetch(remote_name, *refspecs)
            logger.info(f"Fetched {remote_name} {' '.join(refspecs)}".rstrip())
        except GitCommandError as e:
            logger.error(f"Failed to fetch from {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to fetch from {remote_name}: {e}")

    def ls_remote(self, remote_name: str, ref: str) -> Optional[str]:
        """Return the commit id a remote reports for ref, or None."""
        try:
            output = self.repo.git.ls_remote(remote_name, ref)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to query {remote_name} for {ref}: {e}")
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2:
                return parts[0]
        return None

    def push(self, remote_name: str, refspec: str, set_upstream: bool = True) -> None:
        args = ["--quiet"]
        if set_upstream:
            args.append("-u")
        try:
            self.repo.git.push(*args, remote_name, refspec)
            logger.info(f"Pushed {refspec} to {remote_name}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to push {refspec} to {remote_name}: {e}")

    def delete_remote_branch(self, remote_name: str, branch: str) -> None:
        try:
            self.repo.git.push("--quiet", remote_name, "--delete", branch)
            logger.info(f"Deleted {remote_name}/{branch}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to delete {remote_name}/{branch}: {e}")

    # --- Worktrees ---
    def list_worktrees_porcelain(self) -> str:
        try:
            return self.repo.git.worktree("list", "--porcelain")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to list worktrees: {e}")

    def add_worktree(self, path: Path, branch: str, start: Optional[str] = None, create: bool = True) -> None:
        args = ["add"]
        if create:
            args += ["-b", branch, str(path)]
            if start:
                args.append(start)
        else:
            args += [str(path), branch]
        try:
            self.repo.git.worktree(*args)
            logger.info(f"Added worktree {path} for {branch}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to add worktree for {branch}: {e}")

    def remove_worktree(self, path: Path) -> None:
        try:
            self.repo.git.worktree("remove", "--force", str(path))
            logger.info(f"Removed worktree {path}")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to remove worktree {path}: {e}")

    # --- Terminal-attached commands ---
    def run_interactive(self, args: Sequence[str], env: Optional[Dict[str, str]] = None) -> int:
        """Run a command attached to the user's terminal in this worktree."""
        logger.debug(f"Running interactively in {self.working_dir}: {list(args)}")
        completed = subprocess.run(list(args), cwd=str(self.working_dir), env=env, check=False)
        return completed.returncode

    def run_git_interactive(self, *args: str) -> int:
        return self.run_interactive(["git", *args])
