"""
Document store for SCDS.

This module composes the key-value engine, timestamp envelope, identifier
generator and collection registry into per-collection CRUD operations.

Key layout:
    <collection>:<_id>      document body (JSON object text)

Indexes:
    created_at, updated_at, deleted_at   global, over every key
    <collection>:_id                     per collection, created on first write

Invariants:
    - Every operation runs in exactly one engine transaction
    - _id and created_at never change after create
    - update replaces the body; only created_at, deleted_at and _id are
      carried over from the stored version
    - Soft delete changes only deleted_at; hard delete removes the key
    - Collection names never contain ":", so the first ":" of a key always
      ends the collection name

How to change safely:
    - Read preserved timestamps before calling stamp(); it overwrites all three
    - Keep collection name validation at least as strict as today, or keys
      become ambiguous
    - Run the concurrency tests after touching the registry wiring
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..kv import MEMORY_URL, KeyNotFoundError, KVEngine, KVError
from .cursor import Cursor, Page
from .envelope import (
    CREATED_AT,
    DELETED_AT,
    ID_FIELD,
    TIMESTAMP_FIELDS,
    UPDATED_AT,
    decode,
    encode_payload,
    read_timestamps,
    set_field,
    stamp,
)
from .errors import InvalidCollectionError, NotFoundError, StoreError
from .ids import IdGenerator
from .registry import CollectionRegistry

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"

_COLLECTION_RE = re.compile(r"[A-Za-z0-9_.\-]{1,128}")

Payload = str | bytes | Mapping[str, Any]


def validate_collection(collection: str) -> str:
    """Check a collection name.

    Allowed: 1-128 characters from letters, digits, "_", "-" and ".".

    Raises:
        InvalidCollectionError: If the name is not allowed
    """
    if not isinstance(collection, str) or not _COLLECTION_RE.fullmatch(collection):
        raise InvalidCollectionError(collection)
    return collection


def document_key(collection: str, doc_id: str) -> str:
    """Build the storage key for a document."""
    return f"{collection}{KEY_SEPARATOR}{doc_id}"


class DocumentStore:
    """Schemaless document store over an ordered key-value engine.

    Thread safety:
        Operations may be called from many threads. Each maps to one engine
        transaction, and the engine serialises transactions. The collection
        registry guards its own state.

    Example:
        >>> store = DocumentStore(":memory:")
        >>> doc_id = store.create("notes", {"text": "a"})
        >>> store.read("notes", doc_id)["text"]
        'a'
        >>> store.delete("notes", doc_id)
        >>> store.read("notes", doc_id)["deleted_at"] > 0
        True
    """

    def __init__(
        self,
        url: str = MEMORY_URL,
        *,
        engine: KVEngine | None = None,
        clock: Callable[[], float] = time.time,
        id_generator: IdGenerator | None = None,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Open the store and create the global timestamp indexes.

        Args:
            url: Engine connection string (":memory:" or a file path)
            engine: Existing engine to use instead of opening url
            clock: Source of Unix time for lifecycle timestamps
            id_generator: Identifier generator (a fresh one by default)
            busy_timeout_ms: SQLite busy timeout when opening url
            wal_mode: SQLite WAL mode when opening url

        Raises:
            StoreError: If the engine cannot be opened or indexed
        """
        try:
            self._engine = engine or KVEngine(
                url, busy_timeout_ms=busy_timeout_ms, wal_mode=wal_mode
            )
            for name in TIMESTAMP_FIELDS:
                self._engine.create_index(name, "*", name)
        except KVError as e:
            raise StoreError(f"Failed to open document store: {e}") from e

        self._clock = clock
        self._ids = id_generator or IdGenerator()
        self._registry = CollectionRegistry(self._engine)
        self._cursor = Cursor(self._engine)

    @property
    def engine(self) -> KVEngine:
        return self._engine

    @property
    def registry(self) -> CollectionRegistry:
        return self._registry

    def _now(self) -> int:
        return int(self._clock())

    def create(self, collection: str, payload: Payload) -> str:
        """Create a document.

        Args:
            collection: Collection name
            payload: JSON object (text, bytes or mapping)

        Returns:
            The new document's _id

        Raises:
            InvalidCollectionError: If the collection name is not allowed
            EncodingError: If payload is not a JSON object
            StoreError: If the engine fails
        """
        validate_collection(collection)
        document = encode_payload(payload)

        try:
            self._registry.ensure_initialized(collection)
        except KVError as e:
            raise StoreError(f"Failed to initialize collection {collection!r}: {e}") from e

        doc_id = self._ids.next()
        document = set_field(document, ID_FIELD, doc_id)
        document = stamp(document, self._now(), 0, 0)

        try:
            with self._engine.update() as tx:
                tx.set(document_key(collection, doc_id), document)
        except KVError as e:
            raise StoreError(f"Create failed in {collection!r}: {e}") from e

        logger.debug(
            "Created document",
            extra={"collection": collection, "id": doc_id},
        )
        return doc_id

    def read_raw(self, collection: str, doc_id: str) -> str:
        """Read a document as stored JSON text.

        Raises:
            NotFoundError: If the document does not exist
            StoreError: If the engine fails
        """
        validate_collection(collection)
        try:
            with self._engine.view() as tx:
                return tx.get(document_key(collection, doc_id))
        except KeyNotFoundError:
            raise NotFoundError(collection, doc_id) from None
        except KVError as e:
            raise StoreError(f"Read failed for {collection}:{doc_id}: {e}") from e

    def read(self, collection: str, doc_id: str) -> dict[str, Any]:
        """Read a document.

        Soft-deleted documents are still returned, with deleted_at set.

        Raises:
            NotFoundError: If the document does not exist
            StoreError: If the engine fails
        """
        return decode(self.read_raw(collection, doc_id))

    def update(self, collection: str, doc_id: str, payload: Payload) -> None:
        """Replace a document's body.

        The stored created_at and deleted_at are kept, updated_at is set to
        now, and _id is re-stamped from the key. Every other stored field is
        replaced by payload. Update never creates a document.

        Raises:
            NotFoundError: If the document does not exist
            EncodingError: If payload is not a JSON object
            StoreError: If the engine fails
        """
        validate_collection(collection)
        document = encode_payload(payload)
        key = document_key(collection, doc_id)

        try:
            with self._engine.update() as tx:
                existing = tx.get(key)
                created, deleted = read_timestamps(existing, CREATED_AT, DELETED_AT)
                document = set_field(document, ID_FIELD, doc_id)
                document = stamp(document, created, self._now(), deleted)
                tx.set(key, document)
        except KeyNotFoundError:
            raise NotFoundError(collection, doc_id) from None
        except KVError as e:
            raise StoreError(f"Update failed for {key}: {e}") from e

        logger.debug(
            "Updated document",
            extra={"collection": collection, "id": doc_id},
        )

    def delete(self, collection: str, doc_id: str, permanent: bool = False) -> None:
        """Delete a document.

        Args:
            collection: Collection name
            doc_id: Document identifier
            permanent: Remove the key outright instead of stamping deleted_at

        Raises:
            NotFoundError: If the document does not exist
            StoreError: If the engine fails
        """
        validate_collection(collection)
        key = document_key(collection, doc_id)

        try:
            with self._engine.update() as tx:
                if permanent:
                    tx.delete(key)
                else:
                    existing = tx.get(key)
                    created, updated = read_timestamps(existing, CREATED_AT, UPDATED_AT)
                    tx.set(key, stamp(existing, created, updated, self._now()))
        except KeyNotFoundError:
            raise NotFoundError(collection, doc_id) from None
        except KVError as e:
            raise StoreError(f"Delete failed for {key}: {e}") from e

        logger.debug(
            "Deleted document",
            extra={"collection": collection, "id": doc_id, "permanent": permanent},
        )

    def list(self, page_size: int, token: str | None = "0") -> Page:
        """List documents across all collections in creation order.

        See Cursor.list for token semantics.

        Raises:
            InvalidTokenError: If token or page_size is malformed
            StoreError: If the engine fails
        """
        return self._cursor.list(page_size, token)

    def stats(self) -> dict[str, int]:
        """Document and initialised collection counts."""
        try:
            with self._engine.view() as tx:
                documents = tx.count()
        except KVError as e:
            raise StoreError(f"Stats failed: {e}") from e
        return {"documents": documents, "collections": len(self._registry)}

    def close(self) -> None:
        """Release the engine. Later operations raise StoreError."""
        try:
            self._engine.close()
        except KVError as e:
            raise StoreError(f"Close failed: {e}") from e

    def __enter__(self) -> DocumentStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
