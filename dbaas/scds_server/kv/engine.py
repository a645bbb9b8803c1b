"""
Ordered key-value engine for SCDS, backed by SQLite.

This module provides the transactional primitive the document store is built
on: a sorted key space of string keys and JSON text values, with point
operations, range scans and secondary indexes over JSON fields.

Table schema:
    kv:
        - key TEXT PRIMARY KEY
        - value TEXT (JSON document)

Each secondary index is a named (pattern, field) pair. The pattern is a glob
over keys ("*" for every key) and the field is a top-level JSON field of the
value. Each index is backed by a SQLite expression index, partial when the
pattern is narrower than "*".

Invariants:
    - One SQLite connection per engine, shared by all threads
    - Transactions are serialised through a single engine lock
    - A write transaction either commits fully or rolls back fully
    - Overwriting a key keeps its rowid, so index ties keep first-insertion order
    - sqlite3.Error never escapes this module; it is raised as KVError

How to change safely:
    - Keep create_index idempotent; the collection registry relies on it
    - Any change to ascend ordering changes pagination tokens for callers
    - Test ":memory:" and file-backed databases
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MEMORY_URL = ":memory:"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class KVError(Exception):
    """Base exception for key-value engine failures."""

    pass


class KeyNotFoundError(KVError):
    """Key does not exist."""

    pass


class EngineClosedError(KVError):
    """Engine has been closed."""

    pass


class TxNotWritableError(KVError):
    """Write attempted inside a read-only transaction."""

    pass


class IndexExistsError(KVError):
    """Index name is already registered with a different definition."""

    pass


class IndexNotFoundError(KVError):
    """Index name is not registered."""

    pass


def _quote_literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _quote_ident(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


@dataclass(frozen=True)
class IndexSpec:
    """Definition of a secondary index.

    Attributes:
        name: Index name used by ascend()
        pattern: Glob over keys covered by the index ("*" for all)
        field: Top-level JSON field the index orders by
    """

    name: str
    pattern: str
    field: str

    @property
    def sql_name(self) -> str:
        return _quote_ident(f"kvidx_{self.name}")

    @property
    def expression(self) -> str:
        return f"json_extract(value, {_quote_literal('$.' + self.field)})"

    @property
    def where_clause(self) -> str:
        if self.pattern == "*":
            return ""
        return f"WHERE key GLOB {_quote_literal(self.pattern)}"


class Tx:
    """A transaction handle.

    Only valid inside the engine's view() or update() block that produced it.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        indexes: dict[str, IndexSpec],
        writable: bool,
    ) -> None:
        self._conn = conn
        self._indexes = indexes
        self.writable = writable

    def _require_writable(self) -> None:
        if not self.writable:
            raise TxNotWritableError("Transaction is read-only")

    def get(self, key: str) -> str:
        """Get the value stored under key.

        Raises:
            KeyNotFoundError: If key does not exist
        """
        try:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise KVError(f"Get failed for key {key!r}: {e}") from e
        if row is None:
            raise KeyNotFoundError(f"Key not found: {key}")
        return row[0]

    def set(self, key: str, value: str) -> str | None:
        """Set key to value.

        Returns:
            Previous value, or None if the key was new
        """
        self._require_writable()
        try:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            self._conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
        except sqlite3.Error as e:
            raise KVError(f"Set failed for key {key!r}: {e}") from e
        return row[0] if row else None

    def delete(self, key: str) -> str:
        """Delete key.

        Returns:
            The deleted value

        Raises:
            KeyNotFoundError: If key does not exist
        """
        self._require_writable()
        previous = self.get(key)
        try:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise KVError(f"Delete failed for key {key!r}: {e}") from e
        return previous

    def ascend(self, index: str) -> Iterator[tuple[str, str]]:
        """Iterate (key, value) pairs in ascending order of an index field.

        Values missing the field sort first. Equal field values are returned
        in the order their keys were first inserted.

        Raises:
            IndexNotFoundError: If the index is not registered
        """
        spec = self._indexes.get(index)
        if spec is None:
            raise IndexNotFoundError(f"Index not found: {index}")

        query = f"SELECT key, value FROM kv {spec.where_clause} ORDER BY {spec.expression}, rowid"
        try:
            cursor = self._conn.execute(query)
        except sqlite3.Error as e:
            raise KVError(f"Scan failed on index {index!r}: {e}") from e

        try:
            for row in cursor:
                yield row[0], row[1]
        except sqlite3.Error as e:
            raise KVError(f"Scan failed on index {index!r}: {e}") from e
        finally:
            cursor.close()

    def keys(self, pattern: str = "*") -> list[str]:
        """Keys matching a glob pattern, in key order."""
        try:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE key GLOB ? ORDER BY key", (pattern,)
            ).fetchall()
        except sqlite3.Error as e:
            raise KVError(f"Key scan failed for pattern {pattern!r}: {e}") from e
        return [row[0] for row in rows]

    def count(self, pattern: str = "*") -> int:
        """Count keys matching a glob pattern."""
        try:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM kv WHERE key GLOB ?", (pattern,)
            ).fetchone()
        except sqlite3.Error as e:
            raise KVError(f"Count failed for pattern {pattern!r}: {e}") from e
        return row[0]


class KVEngine:
    """SQLite-backed ordered key-value engine.

    Thread safety:
        All transactions share one connection and are serialised by an
        internal lock, giving single-writer semantics with fully isolated
        reads. Index registration takes the same lock.

    Example:
        >>> engine = KVEngine(":memory:")
        >>> engine.create_index("created_at", "*", "created_at")
        True
        >>> with engine.update() as tx:
        ...     tx.set("notes:1", '{"created_at": 1}')
        >>> with engine.view() as tx:
        ...     tx.get("notes:1")
        '{"created_at": 1}'
    """

    def __init__(
        self,
        url: str = MEMORY_URL,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Open the engine.

        Args:
            url: ":memory:" or a path to a SQLite database file
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL journal mode for file databases

        Raises:
            KVError: If the database cannot be opened
        """
        self.url = url
        self._lock = threading.Lock()
        self._indexes: dict[str, IndexSpec] = {}
        self._closed = False

        if url != MEMORY_URL:
            Path(url).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(
                url,
                timeout=busy_timeout_ms / 1000.0,
                isolation_level=None,  # Explicit transactions only
                check_same_thread=False,
            )
            self._conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            if wal_mode and url != MEMORY_URL:
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
        except sqlite3.Error as e:
            raise KVError(f"Failed to open database {url!r}: {e}") from e

        logger.info(f"Opened key-value engine: {url}")

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self) -> sqlite3.Connection:
        if self._closed:
            raise EngineClosedError("Engine is closed")
        return self._conn

    @contextmanager
    def _transaction(self, writable: bool) -> Iterator[Tx]:
        with self._lock:
            conn = self._require_open()
            try:
                conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN")
            except sqlite3.Error as e:
                raise KVError(f"Failed to begin transaction: {e}") from e

            try:
                yield Tx(conn, self._indexes, writable)
            except BaseException:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as e:
                    logger.warning(f"Rollback failed: {e}")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_error:
                    logger.warning(f"Rollback after failed commit failed: {rollback_error}")
                raise KVError(f"Commit failed: {e}") from e

    def view(self) -> AbstractContextManager[Tx]:
        """Open a read-only transaction.

        Raises:
            EngineClosedError: If the engine is closed
        """
        return self._transaction(writable=False)

    def update(self) -> AbstractContextManager[Tx]:
        """Open a read-write transaction.

        Commits when the block exits normally, rolls back if it raises.

        Raises:
            EngineClosedError: If the engine is closed
            KVError: If the commit fails
        """
        return self._transaction(writable=True)

    def create_index(self, name: str, pattern: str, field: str) -> bool:
        """Create a secondary index over a JSON field.

        Idempotent: creating an index that already exists with the same
        definition is a no-op.

        Args:
            name: Index name
            pattern: Glob over keys covered by the index
            field: Top-level JSON field to order by

        Returns:
            True if the index was created, False if it already existed

        Raises:
            IndexExistsError: If name is registered with another definition
            KVError: If the field name is invalid or SQLite fails
        """
        if not _FIELD_RE.match(field):
            raise KVError(f"Invalid index field: {field!r}")

        spec = IndexSpec(name=name, pattern=pattern, field=field)

        with self._lock:
            conn = self._require_open()
            existing = self._indexes.get(name)
            if existing is not None:
                if existing != spec:
                    raise IndexExistsError(
                        f"Index {name!r} already exists as ({existing.pattern}, {existing.field})"
                    )
                return False

            try:
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {spec.sql_name} "
                    f"ON kv ({spec.expression}) {spec.where_clause}"
                )
            except sqlite3.Error as e:
                raise KVError(f"Failed to create index {name!r}: {e}") from e

            self._indexes[name] = spec

        logger.debug(
            "Created index",
            extra={"index": name, "pattern": pattern, "field": field},
        )
        return True

    def indexes(self) -> list[str]:
        """Names of registered indexes."""
        with self._lock:
            return sorted(self._indexes)

    def close(self) -> None:
        """Close the engine. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.close()
            except sqlite3.Error as e:
                raise KVError(f"Failed to close database: {e}") from e

        logger.info(f"Closed key-value engine: {self.url}")
