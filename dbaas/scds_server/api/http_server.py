"""
HTTP server implementation for SCDS.

This module builds the FastAPI application that exposes the document store.

Invariants:
    - Every response body is an envelope: {"error": ..., "result": ...}
    - Document store errors map to fixed status codes (see ERROR_STATUS)
    - The app owns (opens and closes) the store only when none is injected

How to change safely:
    - Keep ERROR_STATUS in sync with the error classes in documents.errors
    - Route handlers must call the store through run_in_threadpool; store
      operations block on SQLite
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .._version import __version__
from ..config import ServerConfig, StorageConfig
from ..documents import DocumentStore, DocumentStoreError
from .routes import router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "NOT_FOUND": 404,
    "ENCODING_ERROR": 400,
    "INVALID_TOKEN": 400,
    "INVALID_COLLECTION": 400,
    "STORE_ERROR": 500,
}


def open_store(config: StorageConfig) -> DocumentStore:
    """Open the document store described by storage configuration."""
    return DocumentStore(
        config.db_url,
        busy_timeout_ms=config.busy_timeout_ms,
        wal_mode=config.wal_mode,
    )


def _error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message, "result": None}, status_code=status)


def create_app(
    config: ServerConfig | None = None,
    store: DocumentStore | None = None,
) -> FastAPI:
    """Create the SCDS FastAPI application.

    Args:
        config: Server configuration (defaults for local development if omitted)
        store: Already-open store to serve; if omitted one is opened from
            config.storage on startup and closed on shutdown

    Returns:
        FastAPI application
    """
    config = config or ServerConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owns_store = app.state.store is None
        if owns_store:
            app.state.store = open_store(config.storage)
            logger.info(f"Document store opened: {config.storage.db_url}")
        try:
            yield
        finally:
            if owns_store:
                app.state.store.close()
                logger.info("Document store closed")

    app = FastAPI(
        title="SCDS",
        description="Schemaless collection document store",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store

    @app.exception_handler(DocumentStoreError)
    async def document_store_error_handler(
        request: Request, exc: DocumentStoreError
    ) -> JSONResponse:
        status = ERROR_STATUS.get(exc.code, 500)
        if status >= 500:
            logger.error(f"Store failure on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return _error_response(status, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(400, f"Invalid request: {exc.errors()}")

    app.include_router(router)

    @app.get("/health")
    async def health() -> JSONResponse:
        try:
            stats = await run_in_threadpool(app.state.store.stats)
        except DocumentStoreError as e:
            logger.warning(f"Health check failed: {e}")
            return JSONResponse({"status": "unhealthy", "error": e.message}, status_code=503)
        return JSONResponse(
            {"status": "healthy", "service": "scds", "version": __version__, **stats}
        )

    return app
