"""
API routes for SCDS.

Provides REST endpoints over the document store:
    POST   /db/{collection}          create, result {"id": ...}
    GET    /db/{collection}/{id}     read, result is the document
    PUT    /db/{collection}/{id}     replace body, result {"success": true}
    DELETE /db/{collection}/{id}     soft delete (?permanent=true for hard)
    GET    /db                       list all collections by creation time

Request bodies are read raw and parsed by the document layer, so malformed
JSON is reported the same way for every write endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..config import HttpConfig
from ..documents import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SCDS"])


# --- Response Models ---


class Envelope(BaseModel):
    """Response wrapper for every endpoint."""

    error: str | None = Field(None, description="Error message on failure")
    result: Any = Field(None, description="Operation result")


class CreatedResult(BaseModel):
    id: str


class SuccessResult(BaseModel):
    success: bool = True


class ListResult(BaseModel):
    """One page of documents."""

    documents: list[dict[str, Any]]
    next_token: str = Field(..., description="Token for the next page")


# --- Dependencies ---


def get_store(request: Request) -> DocumentStore:
    """Get document store from app state."""
    return request.app.state.store


def get_http_config(request: Request) -> HttpConfig:
    """Get HTTP configuration from app state."""
    return request.app.state.config.http


# --- Routes ---


@router.post("/db/{collection}", response_model=Envelope)
async def create_document(
    collection: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> Envelope:
    """Create a document in a collection."""
    body = await request.body()
    doc_id = await run_in_threadpool(store.create, collection, body)
    return Envelope(result=CreatedResult(id=doc_id).model_dump())


@router.get("/db/{collection}/{doc_id}", response_model=Envelope)
async def read_document(
    collection: str,
    doc_id: str,
    store: DocumentStore = Depends(get_store),
) -> Envelope:
    """Read a document, including soft-deleted ones."""
    document = await run_in_threadpool(store.read, collection, doc_id)
    return Envelope(result=document)


@router.put("/db/{collection}/{doc_id}", response_model=Envelope)
async def update_document(
    collection: str,
    doc_id: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> Envelope:
    """Replace a document's body, keeping its lifecycle timestamps."""
    body = await request.body()
    await run_in_threadpool(store.update, collection, doc_id, body)
    return Envelope(result=SuccessResult().model_dump())


@router.delete("/db/{collection}/{doc_id}", response_model=Envelope)
async def delete_document(
    collection: str,
    doc_id: str,
    permanent: bool = Query(False, description="Remove the document instead of soft deleting"),
    store: DocumentStore = Depends(get_store),
) -> Envelope:
    """Soft delete a document, or remove it with permanent=true."""
    await run_in_threadpool(store.delete, collection, doc_id, permanent)
    return Envelope(result=SuccessResult().model_dump())


@router.get("/db", response_model=Envelope)
async def list_documents(
    count: int | None = Query(None, description="Page size"),
    token: str = Query("0", description="Continuation token"),
    store: DocumentStore = Depends(get_store),
    http_config: HttpConfig = Depends(get_http_config),
) -> Envelope:
    """List documents from every collection in creation order."""
    page_size = http_config.default_page_size if count is None else count
    page_size = min(page_size, http_config.max_page_size)
    page = await run_in_threadpool(store.list, page_size, token)
    result = ListResult(documents=page.documents, next_token=page.next_token)
    return Envelope(result=result.model_dump())
