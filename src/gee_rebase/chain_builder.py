"""
Ancestors-first ordering of branches for multi-branch updates.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Set

from .config import DEFAULT_MAX_CHAIN_DEPTH
from .models import ParentageGraphError, is_upstream_ref
from .parentage_store import ParentageStore


logger = logging.getLogger(__name__)


class ChainBuilder:
    """Turns the parentage forest into update chains.

    A chain lists every branch after its local parent. Upstream references end
    a walk since they are only ever pulled from.
    """

    def __init__(self, store: ParentageStore, max_depth: int = DEFAULT_MAX_CHAIN_DEPTH) -> None:
        self.store = store
        self.max_depth = max_depth

    def chain_for(self, branch: str) -> List[str]:
        chain: List[str] = []
        self._extend(chain, set(chain), branch)
        return chain

    def chain_for_all(self, branches: Iterable[str]) -> List[str]:
        chain: List[str] = []
        in_chain: Set[str] = set()
        for branch in branches:
            self._extend(chain, in_chain, branch)
        return chain

    def order(self, branches: Iterable[str]) -> List[str]:
        """Sort a set of branches parents-first, without adding their ancestors."""
        wanted = set(branches)
        return [b for b in self.chain_for_all(sorted(wanted)) if b in wanted]

    def _extend(self, chain: List[str], in_chain: Set[str], branch: str) -> None:
        """Append branch and any of its ancestors not yet in chain."""
        path: List[str] = []
        seen: Set[str] = set()
        current = branch
        while not is_upstream_ref(current) and current not in in_chain:
            if current in seen:
                raise ParentageGraphError(
                    f"Parentage cycle detected while walking up from {branch}: "
                    f"{' -> '.join(path + [current])}"
                )
            if len(path) >= self.max_depth:
                raise ParentageGraphError(
                    f"Parentage of {branch} is deeper than {self.max_depth} branches; "
                    f"the parents file is probably corrupt. Walked: {' -> '.join(path[:10])} ..."
                )
            seen.add(current)
            path.append(current)
            current = self.store.get_parent(current)

        for name in reversed(path):
            chain.append(name)
            in_chain.add(name)
        logger.debug(f"Chain after adding {branch}: {chain}")
