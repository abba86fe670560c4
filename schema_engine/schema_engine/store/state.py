"""Directory-based helpers for per-environment deployment state.

Thin wrappers over :class:`FileSchemaStore` for callers that only hold a
state directory path.
"""

from __future__ import annotations

from pathlib import Path

from schema_engine.models.state import EnvironmentState
from schema_engine.store.file_store import FileSchemaStore


def get_current_snapshot(state_dir: Path | str, environment: str) -> str | None:
    """Hash of the snapshot *environment* currently runs, or ``None``."""
    return FileSchemaStore(state_dir).get_current_snapshot(environment)


def update_state(state_dir: Path | str, environment: str, snapshot_hash: str | None) -> EnvironmentState:
    """Record that *environment* now runs *snapshot_hash*.  Last writer wins."""
    return FileSchemaStore(state_dir).update_state(environment, snapshot_hash)


def get_all_states(state_dir: Path | str) -> list[EnvironmentState]:
    """Every recorded environment state, sorted by environment name."""
    return FileSchemaStore(state_dir).get_all_states()
