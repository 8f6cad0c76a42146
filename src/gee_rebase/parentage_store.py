"""
Persistent branch -> (parent, merge-base) table.

The file is plain text, one branch per line, three shell-quoted fields:

    feature main 1f2e3d...
    'my branch' feature ''

It is meant to be human-readable so that it can be repaired by hand.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional, Set

from .models import ParentageRecord


logger = logging.getLogger(__name__)


class ParentageStore:
    """Owns every ParentageRecord of one repository clone.

    Loaded lazily on first access; after that the in-memory table is the
    source of truth and the file is only written back by save().
    """

    def __init__(self, path: Path, main_branch: str = "main", upstream_remote: str = "upstream") -> None:
        self.path = Path(path)
        self.main_branch = main_branch
        self.upstream_main = f"{upstream_remote}/{main_branch}"
        self._records: Dict[str, ParentageRecord] = {}
        self._loaded = False

    def __enter__(self) -> ParentageStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.save()

    def load(self) -> None:
        if self._loaded:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._records = self._parse(self.path.read_text(encoding="utf-8"))
        self._loaded = True
        logger.debug(f"Loaded {len(self._records)} parentage record(s) from {self.path}")

    def _parse(self, text: str) -> Dict[str, ParentageRecord]:
        records: Dict[str, ParentageRecord] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                fields = shlex.split(line)
            except ValueError as e:
                logger.warning(f"{self.path}:{lineno}: unparseable line skipped ({e}): {line!r}")
                continue
            if len(fields) < 2:
                logger.warning(f"{self.path}:{lineno}: expected branch and parent, got {line!r}")
                continue
            branch, parent = fields[0], fields[1]
            merge_base = fields[2] if len(fields) > 2 else ""
            records[branch] = ParentageRecord(branch=branch, parent=parent, merge_base=merge_base)
        return records

    def save(self) -> None:
        """Write the table back, refusing to replace a populated file with nothing."""
        if not self._loaded:
            return
        if not self._records:
            if self.path.exists() and self.path.read_text(encoding="utf-8").strip():
                logger.warning(f"Almost wrote empty parents file! Leaving {self.path} untouched.")
            return

        lines = [
            " ".join(shlex.quote(v) for v in (rec.branch, rec.parent, rec.merge_base))
            for rec in sorted(self._records.values(), key=lambda r: r.branch)
        ]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".parents.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write("\n".join(lines) + "\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(lines)} parentage record(s) to {self.path}")

    # --- Queries ---
    def has_record(self, branch: str) -> bool:
        self.load()
        return branch in self._records

    def branches(self) -> List[str]:
        self.load()
        return sorted(self._records)

    def get_parent(self, branch: str) -> str:
        """Return branch's parent, guessing main when nothing is recorded."""
        self.load()
        rec = self._records.get(branch)
        if rec is not None and rec.parent:
            return rec.parent
        if branch == self.main_branch:
            self._records[branch] = ParentageRecord(branch, self.upstream_main, rec.merge_base if rec else "")
            return self.upstream_main
        logger.warning(
            f"Strangely, {branch} was missing from {self.path}. Assuming its parent is {self.main_branch}."
        )
        self._records[branch] = ParentageRecord(branch, self.main_branch, rec.merge_base if rec else "")
        return self.main_branch

    def get_merge_base(self, branch: str) -> Optional[str]:
        self.load()
        rec = self._records.get(branch)
        return rec.merge_base if rec and rec.merge_base else None

    def children_of(self, branch: str) -> List[str]:
        """Direct children only."""
        self.load()
        return sorted(b for b, rec in self._records.items() if rec.parent == branch and b != branch)

    def all_children_of(self, branch: str) -> Set[str]:
        """Every transitive descendant of branch, found breadth-first."""
        self.load()
        kids: Dict[str, List[str]] = {}
        for rec in self._records.values():
            kids.setdefault(rec.parent, []).append(rec.branch)

        seen: Set[str] = {branch}
        found: Set[str] = set()
        queue = deque([branch])
        while queue:
            current = queue.popleft()
            for kid in kids.get(current, []):
                if kid in seen:
                    continue
                seen.add(kid)
                found.add(kid)
                queue.append(kid)
        return found

    # --- Mutations ---
    def set_parent(self, branch: str, parent: str, merge_base: Optional[str] = None) -> None:
        self.load()
        old = self._records.get(branch)
        if merge_base is None:
            merge_base = old.merge_base if old else ""
        self._records[branch] = ParentageRecord(branch=branch, parent=parent, merge_base=merge_base)
        logger.info(f"Parent of {branch} is now {parent}")

    def set_merge_base(self, branch: str, merge_base: str) -> None:
        parent = self.get_parent(branch)
        self._records[branch] = ParentageRecord(branch=branch, parent=parent, merge_base=merge_base)
        logger.debug(f"Merge-base of {branch} is now {merge_base}")

    def remove(self, branch: str) -> str:
        """Drop branch and splice its children onto its former parent.

        Returns the former parent.
        """
        self.load()
        rec = self._records.pop(branch, None)
        former_parent = rec.parent if rec and rec.parent else self.main_branch
        for kid in [r for r in self._records.values() if r.parent == branch]:
            kid.parent = former_parent
            logger.info(f"Re-parented {kid.branch} onto {former_parent}")
        return former_parent
