"""
Offset-token pagination over the global creation-time index.

Tokens are decimal offsets into the ascending "created_at" index, which spans
every collection. The next token is always offset + page_size, even when the
page comes back short, so callers detect the end of data by a short or empty
page.

Offset pagination is not stable under concurrent writes: a document created
or hard-deleted between two calls shifts later entries, so a page may repeat
or skip a document. Callers must tolerate both.

Documents whose created_at values are equal come back in the order their
keys were first written.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import closing
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

from ..kv import KVEngine, KVError
from .envelope import CREATED_AT
from .errors import InvalidTokenError, StoreError

logger = logging.getLogger(__name__)

# Offsets and offset + page_size must fit a Python index.
MAX_OFFSET = sys.maxsize


@dataclass
class Page:
    """One page of a listing.

    Attributes:
        documents: Documents in ascending created_at order
        next_token: Token for the following page
    """

    documents: list[dict[str, Any]] = field(default_factory=list)
    next_token: str = "0"


def parse_token(token: str | None) -> int:
    """Parse a continuation token into an offset.

    An empty or missing token means offset 0.

    Raises:
        InvalidTokenError: If token is not a decimal integer in 0..MAX_OFFSET
    """
    if token is None or token == "":
        return 0
    if not token.isascii() or not token.isdigit():
        raise InvalidTokenError(f"Invalid continuation token: {token!r}", details={"token": token})

    digits = token.lstrip("0") or "0"
    if len(digits) > len(str(MAX_OFFSET)) or int(digits) > MAX_OFFSET:
        raise InvalidTokenError(
            f"Continuation token out of range: {token!r}", details={"token": token}
        )
    return int(digits)


class Cursor:
    """Walks the creation-time index in pages."""

    def __init__(self, engine: KVEngine, index: str = CREATED_AT) -> None:
        self._engine = engine
        self._index = index

    def list(self, page_size: int, token: str | None = "0") -> Page:
        """Return one page of documents across all collections.

        Args:
            page_size: Maximum number of documents to return
            token: Continuation token from a previous page ("0" to start)

        Returns:
            Page with documents and next_token = offset + page_size

        Raises:
            InvalidTokenError: If token or page_size is malformed
            StoreError: If the engine fails
        """
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
            raise InvalidTokenError(
                f"Page size must be a positive integer, got {page_size!r}",
                details={"page_size": page_size},
            )
        offset = parse_token(token)
        if offset > MAX_OFFSET - page_size:
            raise InvalidTokenError(
                f"Page end out of range: offset {offset} + page size {page_size}",
                details={"token": token, "page_size": page_size},
            )

        try:
            with self._engine.view() as tx:
                with closing(tx.ascend(self._index)) as entries:
                    values = [value for _, value in islice(entries, offset, offset + page_size)]
        except KVError as e:
            raise StoreError(f"List failed: {e}") from e

        documents = [json.loads(value) for value in values]

        logger.debug(
            "Listed documents",
            extra={"offset": offset, "page_size": page_size, "returned": len(documents)},
        )

        return Page(documents=documents, next_token=str(offset + page_size))
