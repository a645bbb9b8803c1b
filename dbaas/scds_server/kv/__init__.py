"""
Key-value engine for SCDS.

This module provides the ordered, transactional key-value primitive that the
document store layers on:
- Point get/set/delete inside serialised transactions
- Secondary indexes over top-level JSON fields of the stored values
- Ascending scans over those indexes

Invariants:
    - Every operation runs inside a view() or update() transaction
    - Index creation is idempotent
    - Engine failures surface as KVError subclasses

How to change safely:
    - Keep ordering of ascend() stable; pagination tokens depend on it
    - Verify rollback behaviour when adding new write operations
"""

from .engine import (
    MEMORY_URL,
    EngineClosedError,
    IndexExistsError,
    IndexNotFoundError,
    IndexSpec,
    KeyNotFoundError,
    KVEngine,
    KVError,
    Tx,
    TxNotWritableError,
)

__all__ = [
    "MEMORY_URL",
    "KVEngine",
    "Tx",
    "IndexSpec",
    # Errors
    "KVError",
    "KeyNotFoundError",
    "EngineClosedError",
    "TxNotWritableError",
    "IndexExistsError",
    "IndexNotFoundError",
]
