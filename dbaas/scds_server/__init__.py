"""
SCDS Server - embedded, schemaless document store behind a small REST API.

This package implements a document store built on:
- An ordered, transactional key-value engine over SQLite
- Collections as key prefixes ("<collection>:<_id>") with no persisted schema
- Lifecycle timestamps (created_at, updated_at, deleted_at) on every document
- Global secondary indexes over the timestamps for ordered listing

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│  DocumentStore  │
    │             │     │  (FastAPI)  │     │                 │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                              ┌──────────────────────┼──────────────────┐
                              │                      │                  │
                              ▼                      ▼                  ▼
                        ┌───────────┐        ┌──────────────┐    ┌───────────┐
                        │ Collection│        │  Envelope /  │    │  Cursor   │
                        │ Registry  │        │  IdGenerator │    │ (listing) │
                        └─────┬─────┘        └──────────────┘    └─────┬─────┘
                              │                                        │
                              ▼                                        ▼
                        ┌─────────────────────────────────────────────────┐
                        │              KVEngine (SQLite)                  │
                        └─────────────────────────────────────────────────┘

Invariants:
    - Every store operation is exactly one engine transaction
    - Document ids are ULIDs and never change
    - Soft-deleted documents stay readable and listable
    - Listing is global across collections, ordered by created_at

How to change safely:
    - Key layout and index names are the on-disk format; change them only
      with a migration
    - Pagination tokens are plain offsets; keep them decimal strings
"""

from ._version import __version__

__all__ = ["__version__"]
