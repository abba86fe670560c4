"""Content-addressed persistence for snapshots, transitions and environment state."""

from __future__ import annotations

from schema_engine.config import Settings, load_settings
from schema_engine.store.base import SchemaStore, validate_environment
from schema_engine.store.file_store import FileSchemaStore
from schema_engine.store.memory_store import InMemorySchemaStore
from schema_engine.store.records import create_snapshot, create_transition, snapshot_model
from schema_engine.store.state import get_all_states, get_current_snapshot, update_state


def open_store(settings: Settings | None = None) -> FileSchemaStore:
    """Open the file store rooted at ``settings.state_dir``."""
    settings = settings or load_settings()
    return FileSchemaStore(settings.state_dir)


__all__ = [
    "FileSchemaStore",
    "InMemorySchemaStore",
    "SchemaStore",
    "create_snapshot",
    "create_transition",
    "get_all_states",
    "get_current_snapshot",
    "open_store",
    "snapshot_model",
    "update_state",
    "validate_environment",
]
