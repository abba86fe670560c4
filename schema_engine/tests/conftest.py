"""Shared fixtures for schema engine tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from schema_engine.store.file_store import FileSchemaStore
from schema_engine.store.memory_store import InMemorySchemaStore

# ---------------------------------------------------------------------------
# Entity definitions
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_entities() -> dict[str, Any]:
    """A single User entity with a generated UUID key and a unique email."""
    return {
        "User": {
            "id": "uuid! primary = gen_uuid",
            "email": "email! unique",
            "name": "string(100)",
        },
    }


@pytest.fixture()
def blog_entities() -> dict[str, Any]:
    """User plus Post, related through a required cascading reference."""
    return {
        "User": {
            "id": "uuid! primary = gen_uuid",
            "email": "email! unique",
            "name": "string(100)",
            "posts": "Post[]",
        },
        "Post": {
            "id": "uuid! primary = gen_uuid",
            "author": "User! cascade",
            "title": "string(200)!",
            "published": "boolean = false",
        },
    }


@pytest.fixture()
def blog_entities_v3() -> dict[str, Any]:
    """Blog schema after dropping User.name, adding User.bio and widening Post.title."""
    return {
        "User": {
            "id": "uuid! primary = gen_uuid",
            "email": "email! unique",
            "bio": "text",
            "posts": "Post[]",
        },
        "Post": {
            "id": "uuid! primary = gen_uuid",
            "author": "User! cascade",
            "title": "string(300)!",
            "published": "boolean = false",
        },
    }


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store() -> InMemorySchemaStore:
    return InMemorySchemaStore()


@pytest.fixture()
def file_store(tmp_path: Path) -> FileSchemaStore:
    return FileSchemaStore(tmp_path / "store")


@pytest.fixture(params=["memory", "file"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> InMemorySchemaStore | FileSchemaStore:
    """Every store backend, for behaviour both must share."""
    if request.param == "memory":
        return InMemorySchemaStore()
    return FileSchemaStore(tmp_path / "store")
