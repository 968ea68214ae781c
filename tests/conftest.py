"""Shared fixtures for the taskvfs test suite."""

import pytest

from taskvfs.config import VFSConfig
from taskvfs.filesystem import TaskVFS
from taskvfs.host_tools import HostToolRegistry

# Deeper than the default interpreter recursion limit
DEEP_TREE_DEPTH = 1100


@pytest.fixture
def eco_root(tmp_path):
    """Ecosystem root inside a per-test temporary directory."""
    return tmp_path / "eco"


@pytest.fixture
def config(eco_root):
    """Config for task t1, run r1; audit records go to the logger only (no audit file)."""
    return VFSConfig(ecosystem_root=eco_root, task_id="t1", run_id="r1")


@pytest.fixture
def vfs(config):
    """A TaskVFS closed after the test."""
    instance = TaskVFS(config)
    yield instance
    instance.close()


@pytest.fixture
def tools(vfs):
    """Host tool registry bound to the vfs fixture."""
    return HostToolRegistry(vfs)


@pytest.fixture
def deep_tree():
    """
    Factory building a chain of nested ``d`` directories under a root with a
    4-byte ``leaf.txt`` at the bottom. Teardown removes the chain bottom-up
    without recursion.
    """
    chains = []

    def build(root, depth=DEEP_TREE_DEPTH):
        levels = []
        current = root
        for _ in range(depth):
            current = current / "d"
            current.mkdir()
            levels.append(current)
        (current / "leaf.txt").write_text("leaf")
        chains.append(levels)
        return current

    yield build

    for levels in chains:
        (levels[-1] / "leaf.txt").unlink(missing_ok=True)
        for level in reversed(levels):
            if level.exists():
                level.rmdir()
