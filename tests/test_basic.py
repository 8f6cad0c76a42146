"""
Basic tests for gee-rebase.
"""

import re

from gee_rebase import __version__
from gee_rebase import (
    BranchOrchestrator, ChainBuilder, ConflictResolver, GeeConfig, GitManager,
    ParentageStore, RebaseEngine, SquashPropagator, WorktreeRegistry,
)


def test_version_matches_semver():
    assert re.match(r"^\d+\.\d+\.\d+$", __version__)


def test_all_imports():
    for obj in (
        BranchOrchestrator, ChainBuilder, ConflictResolver, GeeConfig, GitManager,
        ParentageStore, RebaseEngine, SquashPropagator, WorktreeRegistry,
    ):
        assert obj is not None


def test_package_structure():
    import gee_rebase

    for name in gee_rebase.__all__:
        assert hasattr(gee_rebase, name), f"Missing export: {name}"
