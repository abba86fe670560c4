"""The storage interface shared by every schema store backend."""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from schema_engine.models.snapshot import Snapshot
from schema_engine.models.state import EnvironmentState
from schema_engine.models.transition import Transition

_ENVIRONMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_environment(environment: str) -> str:
    """Return *environment* unchanged, or raise ``ValueError`` if it is not a safe name."""
    if not environment or not _ENVIRONMENT_RE.match(environment) or environment in (".", ".."):
        raise ValueError(f"Invalid environment name: {environment!r}")
    return environment


@runtime_checkable
class SchemaStore(Protocol):
    """Content-addressed persistence for snapshots and transitions plus mutable environment state.

    Snapshots and transitions are immutable and keyed by hash; saving an
    existing hash is a no-op.  Environment state is the only mutable record
    and follows last-writer-wins semantics.
    """

    # -- Snapshots ----------------------------------------------------------

    def save_snapshot(self, snapshot: Snapshot) -> None: ...

    def load_snapshot(self, snapshot_hash: str) -> Snapshot: ...

    def snapshot_exists(self, snapshot_hash: str) -> bool: ...

    def get_all_snapshots(self) -> list[Snapshot]: ...

    # -- Transitions --------------------------------------------------------

    def save_transition(self, transition: Transition) -> None: ...

    def load_transition(self, transition_hash: str) -> Transition: ...

    def transition_exists(self, transition_hash: str) -> bool: ...

    def get_all_transitions(self) -> list[Transition]: ...

    def transitions_from(self, snapshot_hash: str) -> list[Transition]: ...

    def transitions_to(self, snapshot_hash: str) -> list[Transition]: ...

    # -- Environment state --------------------------------------------------

    def get_state(self, environment: str) -> EnvironmentState | None: ...

    def get_current_snapshot(self, environment: str) -> str | None: ...

    def update_state(self, environment: str, snapshot_hash: str | None) -> EnvironmentState: ...

    def get_all_states(self) -> list[EnvironmentState]: ...

    def list_environments(self) -> list[str]: ...
