"""
HTTP API for SCDS.

Exposes the document store operations over REST with JSON envelopes.
"""

from .http_server import ERROR_STATUS, create_app, open_store
from .routes import router

__all__ = [
    "create_app",
    "open_store",
    "router",
    "ERROR_STATUS",
]
