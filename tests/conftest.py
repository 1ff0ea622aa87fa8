"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import logging

import pytest

from cops.adapters.store.memory import MemoryStore
from tests.factories import buildkit_manifest, buildkite_manifest


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory resource store."""
    return MemoryStore()


@pytest.fixture
def fleet_store() -> MemoryStore:
    """Store holding one Buildkit (ci/buildkitd) with no children yet."""
    return MemoryStore([buildkit_manifest()])


@pytest.fixture
def agent_store() -> MemoryStore:
    """Store holding one Buildkite (ci/agents) with no children yet."""
    return MemoryStore([buildkite_manifest()])


@pytest.fixture
def restore_logging():
    """Put the root logger back after a test that calls setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
