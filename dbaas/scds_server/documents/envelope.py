"""
Timestamp envelope for stored documents.

Documents are persisted as JSON object text. Besides the caller's fields,
each document carries store-managed fields:
    _id         - document identifier
    created_at  - Unix seconds, set once at creation
    updated_at  - Unix seconds, 0 until the first update
    deleted_at  - Unix seconds, 0 until a soft delete

stamp() overwrites all three timestamps at once, so callers must read the
ones they want to keep with read_timestamps() first.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .errors import EncodingError

ID_FIELD = "_id"
CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"

TIMESTAMP_FIELDS = (CREATED_AT, UPDATED_AT, DELETED_AT)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def decode(document: str | bytes) -> dict[str, Any]:
    """Parse JSON object text.

    NaN, Infinity and -Infinity are rejected; SQLite's JSON functions cannot
    read them back.

    Raises:
        EncodingError: If the text is not a JSON object
    """
    try:
        value = json.loads(document, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Malformed JSON document: {e}") from e

    if not isinstance(value, dict):
        raise EncodingError(f"Document must be a JSON object, got {type(value).__name__}")
    return value


def encode(value: Mapping[str, Any]) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Document is not JSON serializable: {e}") from e


def encode_payload(payload: str | bytes | Mapping[str, Any]) -> str:
    """Normalize a caller payload into JSON object text.

    Args:
        payload: JSON text (str or bytes) or a mapping

    Returns:
        JSON object text

    Raises:
        EncodingError: If the payload is not a JSON object
    """
    if isinstance(payload, Mapping):
        return encode(payload)
    return encode(decode(payload))


def set_field(document: str, name: str, value: Any) -> str:
    """Return document with one top-level field set."""
    data = decode(document)
    data[name] = value
    return encode(data)


def stamp(document: str, created: int, updated: int, deleted: int) -> str:
    """Set the three lifecycle timestamps on a document.

    All other fields are left unchanged. Field order in the result is not
    guaranteed.

    Args:
        document: JSON object text
        created: created_at value
        updated: updated_at value
        deleted: deleted_at value

    Returns:
        JSON object text with the timestamps set

    Raises:
        EncodingError: If document is not a JSON object
    """
    data = decode(document)
    data[CREATED_AT] = int(created)
    data[UPDATED_AT] = int(updated)
    data[DELETED_AT] = int(deleted)
    return encode(data)


def read_timestamps(document: str, *fields: str) -> tuple[int, ...]:
    """Read integer fields from a document.

    Missing or non-numeric fields read as 0.

    Example:
        >>> read_timestamps('{"created_at": 10}', "created_at", "deleted_at")
        (10, 0)
    """
    data = decode(document)
    result = []
    for name in fields:
        value = data.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            result.append(0)
        else:
            result.append(int(value))
    return tuple(result)
