"""
Unit tests for the SQLite key-value engine.

Tests cover:
- Point get/set/delete
- Transaction commit and rollback
- Index creation and ascending scans
- Closed engine behaviour
"""

import json
import os

import pytest

from dbaas.scds_server.kv import (
    EngineClosedError,
    IndexExistsError,
    IndexNotFoundError,
    KeyNotFoundError,
    KVEngine,
    KVError,
    TxNotWritableError,
)


def doc(**fields):
    return json.dumps(fields)


class TestKVEngineBasics:
    """Tests for point operations."""

    def test_set_and_get(self, engine):
        """Value written in one transaction is visible in the next."""
        with engine.update() as tx:
            previous = tx.set("notes:1", doc(text="a"))

        assert previous is None
        with engine.view() as tx:
            assert json.loads(tx.get("notes:1")) == {"text": "a"}

    def test_set_returns_previous(self, engine):
        """Overwriting a key returns the old value."""
        with engine.update() as tx:
            tx.set("k", doc(v=1))
            previous = tx.set("k", doc(v=2))

        assert json.loads(previous) == {"v": 1}

    def test_get_missing_raises(self, engine):
        """Missing key raises KeyNotFoundError."""
        with engine.view() as tx:
            with pytest.raises(KeyNotFoundError):
                tx.get("nope")

    def test_delete(self, engine):
        """Delete removes the key and returns its value."""
        with engine.update() as tx:
            tx.set("k", doc(v=1))
        with engine.update() as tx:
            assert json.loads(tx.delete("k")) == {"v": 1}
        with engine.view() as tx:
            with pytest.raises(KeyNotFoundError):
                tx.get("k")

    def test_delete_missing_raises(self, engine):
        with engine.update() as tx:
            with pytest.raises(KeyNotFoundError):
                tx.delete("k")

    def test_view_is_read_only(self, engine):
        """Writes inside view() are rejected."""
        with engine.view() as tx:
            with pytest.raises(TxNotWritableError):
                tx.set("k", doc(v=1))
            with pytest.raises(TxNotWritableError):
                tx.delete("k")

    def test_keys_and_count(self, engine):
        with engine.update() as tx:
            tx.set("b:2", doc())
            tx.set("a:1", doc())
            tx.set("b:1", doc())

        with engine.view() as tx:
            assert tx.keys("b:*") == ["b:1", "b:2"]
            assert tx.count() == 3
            assert tx.count("a:*") == 1


class TestKVEngineTransactions:
    """Tests for commit and rollback."""

    def test_exception_rolls_back(self, engine):
        """An exception inside update() discards every write in it."""
        with engine.update() as tx:
            tx.set("k", doc(v=1))

        with pytest.raises(RuntimeError):
            with engine.update() as tx:
                tx.set("k", doc(v=2))
                tx.set("other", doc(v=3))
                raise RuntimeError("boom")

        with engine.view() as tx:
            assert json.loads(tx.get("k")) == {"v": 1}
            assert tx.count() == 1

    def test_engine_usable_after_rollback(self, engine):
        with pytest.raises(KeyNotFoundError):
            with engine.update() as tx:
                tx.get("missing")

        with engine.update() as tx:
            tx.set("k", doc(v=1))
        with engine.view() as tx:
            assert tx.count() == 1

    def test_file_database_persists(self, data_dir):
        """Data in a file database survives reopening."""
        path = os.path.join(data_dir, "nested", "scds.db")
        eng = KVEngine(path)
        with eng.update() as tx:
            tx.set("k", doc(v=1))
        eng.close()

        reopened = KVEngine(path)
        try:
            with reopened.view() as tx:
                assert json.loads(tx.get("k")) == {"v": 1}
        finally:
            reopened.close()


class TestKVEngineIndexes:
    """Tests for secondary indexes."""

    def test_create_index_idempotent(self, engine):
        assert engine.create_index("created_at", "*", "created_at") is True
        assert engine.create_index("created_at", "*", "created_at") is False
        assert engine.indexes() == ["created_at"]

    def test_create_index_conflicting_definition(self, engine):
        engine.create_index("ts", "*", "created_at")
        with pytest.raises(IndexExistsError):
            engine.create_index("ts", "*", "updated_at")

    def test_create_index_invalid_field(self, engine):
        with pytest.raises(KVError):
            engine.create_index("bad", "*", "a.b'c")

    def test_ascend_orders_by_field(self, engine):
        engine.create_index("created_at", "*", "created_at")
        with engine.update() as tx:
            tx.set("a:1", doc(created_at=30))
            tx.set("b:1", doc(created_at=10))
            tx.set("a:2", doc(created_at=20))

        with engine.view() as tx:
            keys = [key for key, _ in tx.ascend("created_at")]

        assert keys == ["b:1", "a:2", "a:1"]

    def test_ascend_ties_follow_insertion_order(self, engine):
        """Equal field values come back in first-insertion order, not key order."""
        engine.create_index("created_at", "*", "created_at")
        with engine.update() as tx:
            tx.set("z", doc(created_at=5))
            tx.set("a", doc(created_at=5))
            tx.set("m", doc(created_at=5))

        # Overwriting keeps the original position
        with engine.update() as tx:
            tx.set("z", doc(created_at=5, touched=True))

        with engine.view() as tx:
            keys = [key for key, _ in tx.ascend("created_at")]

        assert keys == ["z", "a", "m"]

    def test_ascend_respects_pattern(self, engine):
        engine.create_index("notes:_id", "notes:*", "_id")
        with engine.update() as tx:
            tx.set("notes:b", doc(_id="b"))
            tx.set("tasks:a", doc(_id="a"))
            tx.set("notes:a", doc(_id="a"))

        with engine.view() as tx:
            keys = [key for key, _ in tx.ascend("notes:_id")]

        assert keys == ["notes:a", "notes:b"]

    def test_ascend_unknown_index(self, engine):
        with engine.view() as tx:
            with pytest.raises(IndexNotFoundError):
                list(tx.ascend("nope"))


class TestKVEngineClose:
    """Tests for engine shutdown."""

    def test_close_idempotent(self):
        eng = KVEngine(":memory:")
        eng.close()
        eng.close()
        assert eng.closed is True

    def test_operations_after_close_fail(self):
        eng = KVEngine(":memory:")
        eng.close()

        with pytest.raises(EngineClosedError):
            with eng.view():
                pass
        with pytest.raises(EngineClosedError):
            eng.create_index("x", "*", "x")
