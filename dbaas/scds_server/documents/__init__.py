"""
Document layer for SCDS - schemaless collections over the key-value engine.

This module handles:
- Per-collection create/read/update/delete with soft-delete semantics
- Lifecycle timestamps (created_at, updated_at, deleted_at) on every document
- Time-sortable identifier assignment
- Lazy per-collection index initialisation
- Offset-token pagination over the global creation-time index

Invariants:
    - Document keys are "<collection>:<_id>"
    - Every operation is one engine transaction
    - Listing spans all collections and includes soft-deleted documents

How to change safely:
    - Changing the key layout or index names invalidates existing databases
    - Keep pagination tokens as plain decimal offsets; clients store them
"""

from .cursor import Cursor, Page, parse_token
from .errors import (
    DocumentStoreError,
    EncodingError,
    InvalidCollectionError,
    InvalidTokenError,
    NotFoundError,
    StoreError,
)
from .ids import IdGenerator, new_id
from .registry import CollectionRegistry
from .store import DocumentStore, document_key, validate_collection

__all__ = [
    "DocumentStore",
    "CollectionRegistry",
    "Cursor",
    "Page",
    "IdGenerator",
    "new_id",
    "parse_token",
    "document_key",
    "validate_collection",
    # Errors
    "DocumentStoreError",
    "NotFoundError",
    "EncodingError",
    "InvalidTokenError",
    "InvalidCollectionError",
    "StoreError",
]
