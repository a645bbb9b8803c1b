"""Document identifier generation."""

from __future__ import annotations

import threading

from ulid import ULID


class IdGenerator:
    """Generates ULID document identifiers.

    ULIDs sort lexically by creation time at millisecond granularity. Within
    one generator, identifiers are strictly increasing: when a fresh ULID
    does not sort after the last one issued (same millisecond), the last
    value plus one is issued instead.

    Thread-safety:
        next() is guarded by an internal lock and never returns duplicates.
    """

    def __init__(self) -> None:
        self._last: int | None = None
        self._lock = threading.Lock()

    def next(self) -> str:
        """Return a new identifier string (26 characters, Crockford base32)."""
        with self._lock:
            candidate = ULID()
            if self._last is not None and int(candidate) <= self._last:
                candidate = ULID.from_int(self._last + 1)
            self._last = int(candidate)
            return str(candidate)


_default_generator = IdGenerator()


def new_id() -> str:
    """Return an identifier from the process-wide generator."""
    return _default_generator.next()
