"""
Shared fixtures for SCDS tests.
"""

import tempfile

import pytest

from dbaas.scds_server.documents import DocumentStore
from dbaas.scds_server.kv import KVEngine


class FakeClock:
    """Controllable Unix-seconds clock."""

    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 1) -> None:
        self.now += seconds


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    """In-memory key-value engine."""
    eng = KVEngine(":memory:")
    yield eng
    eng.close()


@pytest.fixture
def store(clock):
    """In-memory document store on a fake clock."""
    s = DocumentStore(":memory:", clock=clock)
    yield s
    s.close()
