"""
Collection registry for the SCDS document store.

Tracks which collections have had their identifier index created during the
current process lifetime. Collections are initialised lazily on first write.

Invariants:
    - A collection is marked initialised only after its index exists
    - A failed index creation leaves the collection unmarked
    - Each collection is initialised at most once per registry

Thread-safety:
    - The registry map is guarded by its own lock, independent of the
      engine's transaction lock
    - Initialisation of different collections proceeds independently
      (one lock per collection)
    - Concurrent first use of the same collection creates the index once
    - A per-collection lock is dropped once its collection is initialised
"""

from __future__ import annotations

import logging
import threading

from ..kv import KVEngine
from .envelope import ID_FIELD

logger = logging.getLogger(__name__)


def id_index_name(collection: str) -> str:
    """Name of the per-collection identifier index."""
    return f"{collection}:{ID_FIELD}"


class CollectionRegistry:
    """Lazy, idempotent per-collection initialisation.

    Example:
        >>> registry = CollectionRegistry(engine)
        >>> registry.ensure_initialized("notes")
        True
        >>> registry.ensure_initialized("notes")
        False
    """

    def __init__(self, engine: KVEngine) -> None:
        self._engine = engine
        self._initialized: dict[str, bool] = {}
        self._init_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def is_initialized(self, collection: str) -> bool:
        with self._lock:
            return self._initialized.get(collection, False)

    def ensure_initialized(self, collection: str) -> bool:
        """Initialise a collection if this is its first use.

        Creates the collection's identifier index, ordering "_id" over all
        keys under "<collection>:".

        Args:
            collection: Collection name (already validated)

        Returns:
            True if this call initialised the collection, False otherwise

        Raises:
            KVError: If index creation fails; the collection stays unmarked
        """
        with self._lock:
            if self._initialized.get(collection):
                return False
            init_lock = self._init_locks.setdefault(collection, threading.Lock())

        with init_lock:
            with self._lock:
                if self._initialized.get(collection):
                    return False

            self._engine.create_index(id_index_name(collection), f"{collection}:*", ID_FIELD)

            with self._lock:
                self._initialized[collection] = True
                self._init_locks.pop(collection, None)

        logger.debug(f"Initialized collection: {collection}")
        return True

    def collections(self) -> list[str]:
        """Names of initialised collections, sorted."""
        with self._lock:
            return sorted(name for name, done in self._initialized.items() if done)

    def __contains__(self, collection: object) -> bool:
        return isinstance(collection, str) and self.is_initialized(collection)

    def __len__(self) -> int:
        return len(self.collections())
