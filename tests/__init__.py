"""
SCDS Test Suite.

This package contains:
- unit/: Unit tests (in-memory SQLite, no server)
- integration/: Integration tests (file-backed stores, threads, HTTP API)
"""
