"""
Unit tests for the collection registry.

Tests cover:
- Lazy, idempotent initialisation
- Failure leaves the collection unmarked
- Concurrent first use
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from dbaas.scds_server.documents.registry import CollectionRegistry, id_index_name
from dbaas.scds_server.kv import KVError


class RecordingEngine:
    """Engine stand-in that records create_index calls."""

    def __init__(self, fail_times: int = 0, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.fail_times = fail_times
        self.delay = delay
        self._lock = threading.Lock()

    def create_index(self, name: str, pattern: str, field: str) -> bool:
        time.sleep(self.delay)
        with self._lock:
            if self.fail_times > 0:
                self.fail_times -= 1
                raise KVError("disk full")
            self.calls.append((name, pattern, field))
        return True


class TestCollectionRegistry:
    """Tests for CollectionRegistry."""

    def test_first_use_creates_id_index(self):
        engine = RecordingEngine()
        registry = CollectionRegistry(engine)

        assert registry.ensure_initialized("notes") is True

        assert engine.calls == [("notes:_id", "notes:*", "_id")]
        assert registry.is_initialized("notes")
        assert "notes" in registry

    def test_repeat_use_is_noop(self):
        engine = RecordingEngine()
        registry = CollectionRegistry(engine)

        registry.ensure_initialized("notes")
        assert registry.ensure_initialized("notes") is False

        assert len(engine.calls) == 1

    def test_collections_are_independent(self):
        registry = CollectionRegistry(RecordingEngine())

        registry.ensure_initialized("notes")
        registry.ensure_initialized("tasks")

        assert registry.collections() == ["notes", "tasks"]
        assert len(registry) == 2

    def test_failed_index_creation_leaves_collection_unmarked(self):
        """A failed first use can be retried and is not reported as initialised."""
        engine = RecordingEngine(fail_times=1)
        registry = CollectionRegistry(engine)

        with pytest.raises(KVError):
            registry.ensure_initialized("notes")

        assert not registry.is_initialized("notes")
        assert registry.collections() == []

        assert registry.ensure_initialized("notes") is True
        assert registry.is_initialized("notes")

    def test_init_lock_released_after_initialisation(self):
        """Per-collection locks do not accumulate once collections are initialised."""
        registry = CollectionRegistry(RecordingEngine())

        for i in range(50):
            registry.ensure_initialized(f"col{i}")

        assert len(registry) == 50
        assert registry._init_locks == {}

    def test_init_lock_kept_after_failure(self):
        engine = RecordingEngine(fail_times=1)
        registry = CollectionRegistry(engine)

        with pytest.raises(KVError):
            registry.ensure_initialized("notes")
        assert "notes" in registry._init_locks

        registry.ensure_initialized("notes")
        assert registry._init_locks == {}

    def test_concurrent_first_use_same_collection(self):
        """Many threads racing on one new collection create its index exactly once."""
        engine = RecordingEngine(delay=0.01)
        registry = CollectionRegistry(engine)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: registry.ensure_initialized("notes"), range(32)))

        assert results.count(True) == 1
        assert len(engine.calls) == 1
        assert registry._init_locks == {}

    def test_concurrent_first_use_many_collections(self):
        engine = RecordingEngine(delay=0.005)
        registry = CollectionRegistry(engine)
        names = [f"col{i}" for i in range(10)]

        with ThreadPoolExecutor(max_workers=10) as pool:
            list(pool.map(registry.ensure_initialized, names * 3))

        assert registry.collections() == sorted(names)
        assert sorted(call[0] for call in engine.calls) == sorted(id_index_name(n) for n in names)

    def test_with_real_engine(self, engine):
        registry = CollectionRegistry(engine)

        registry.ensure_initialized("notes")

        assert "notes:_id" in engine.indexes()
