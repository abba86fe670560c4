"""Canonical serialization and content hashing.

Every hash in the engine is a lowercase hex SHA-256 digest (64 characters)
over the *canonical* JSON form of a payload: sorted keys, no insignificant
whitespace, UTF-8.  Identical content therefore always yields an identical
address, independent of dict insertion order.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel

HASH_LENGTH = 64


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models (possibly nested in lists/dicts) to JSON-safe data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def canonical_json(payload: Any) -> str:
    """Serialize *payload* to its canonical JSON string."""
    return json.dumps(
        to_jsonable(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def content_hash(payload: Any) -> str:
    """Return the SHA-256 hex digest of the canonical form of *payload*."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def is_valid_hash(value: str) -> bool:
    """Whether *value* looks like a full-length lowercase hex SHA-256 digest."""
    return len(value) == HASH_LENGTH and all(c in "0123456789abcdef" for c in value)
