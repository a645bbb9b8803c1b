"""
Error types for the SCDS document store.

This module defines all exception types raised by document operations:
- DocumentStoreError: Base exception
- NotFoundError: Read/update/delete target is absent
- EncodingError: Payload is not a well-formed JSON object
- InvalidTokenError: Pagination token or page size is malformed
- InvalidCollectionError: Collection name is not allowed
- StoreError: Underlying key-value engine failure

Invariants:
    - All errors inherit from DocumentStoreError
    - Each error carries a stable code for the HTTP layer
    - StoreError chains the engine exception as its cause
"""

from __future__ import annotations

from typing import Any


class DocumentStoreError(Exception):
    """Base exception for all document store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "SCDS_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DocumentStoreError):
    """Document does not exist."""

    code = "NOT_FOUND"

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(
            f"Document not found: {collection}:{doc_id}",
            details={"collection": collection, "id": doc_id},
        )
        self.collection = collection
        self.doc_id = doc_id


class EncodingError(DocumentStoreError):
    """Payload cannot be parsed or patched as a JSON object."""

    code = "ENCODING_ERROR"


class InvalidTokenError(DocumentStoreError):
    """Pagination request is malformed.

    Raised when:
    - Token is not a non-negative decimal integer
    - Page size is not a positive integer
    """

    code = "INVALID_TOKEN"


class InvalidCollectionError(DocumentStoreError):
    """Collection name is empty, too long, or contains disallowed characters."""

    code = "INVALID_COLLECTION"

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Invalid collection name: {collection!r}",
            details={"collection": collection},
        )
        self.collection = collection


class StoreError(DocumentStoreError):
    """Underlying key-value engine failed (disk, corruption, closed engine)."""

    code = "STORE_ERROR"
