"""In-process schema store, used by tests and embedding callers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from schema_engine.errors import SnapshotNotFoundError, StoreCorruptionError, TransitionNotFoundError
from schema_engine.models.snapshot import Snapshot
from schema_engine.models.state import EnvironmentState
from schema_engine.models.transition import Transition
from schema_engine.store.base import validate_environment

logger = logging.getLogger(__name__)


def transition_order(transition: Transition) -> tuple[datetime, str]:
    """Deterministic ordering: creation time, then hash."""
    return transition.metadata.created_at, transition.hash


class InMemorySchemaStore:
    """Dict-backed :class:`~schema_engine.store.base.SchemaStore`."""

    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}
        self._transitions: dict[str, Transition] = {}
        self._outgoing: dict[str, list[str]] = {}
        self._incoming: dict[str, list[str]] = {}
        self._states: dict[str, EnvironmentState] = {}

    # -- Snapshots ----------------------------------------------------------

    def save_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot.hash in self._snapshots:
            logger.debug("Snapshot %s already stored (deduplicated)", snapshot.hash[:8])
            return
        self._snapshots[snapshot.hash] = snapshot

    def load_snapshot(self, snapshot_hash: str) -> Snapshot:
        try:
            return self._snapshots[snapshot_hash]
        except KeyError:
            raise SnapshotNotFoundError(snapshot_hash) from None

    def snapshot_exists(self, snapshot_hash: str) -> bool:
        return snapshot_hash in self._snapshots

    def get_all_snapshots(self) -> list[Snapshot]:
        return sorted(self._snapshots.values(), key=lambda s: (s.metadata.created_at, s.hash))

    # -- Transitions --------------------------------------------------------

    def save_transition(self, transition: Transition) -> None:
        if transition.expected_hash() != transition.hash:
            raise StoreCorruptionError(transition.hash, "transition hash does not match its content")
        if transition.hash in self._transitions:
            logger.debug("Transition %s already stored (deduplicated)", transition.hash[:8])
            return
        self._transitions[transition.hash] = transition
        self._outgoing.setdefault(transition.from_hash, []).append(transition.hash)
        self._incoming.setdefault(transition.to_hash, []).append(transition.hash)

    def load_transition(self, transition_hash: str) -> Transition:
        try:
            return self._transitions[transition_hash]
        except KeyError:
            raise TransitionNotFoundError(transition_hash) from None

    def transition_exists(self, transition_hash: str) -> bool:
        return transition_hash in self._transitions

    def get_all_transitions(self) -> list[Transition]:
        return sorted(self._transitions.values(), key=transition_order)

    def transitions_from(self, snapshot_hash: str) -> list[Transition]:
        found = [self._transitions[h] for h in self._outgoing.get(snapshot_hash, [])]
        return sorted(found, key=transition_order)

    def transitions_to(self, snapshot_hash: str) -> list[Transition]:
        found = [self._transitions[h] for h in self._incoming.get(snapshot_hash, [])]
        return sorted(found, key=transition_order)

    # -- Environment state --------------------------------------------------

    def get_state(self, environment: str) -> EnvironmentState | None:
        return self._states.get(validate_environment(environment))

    def get_current_snapshot(self, environment: str) -> str | None:
        state = self.get_state(environment)
        return state.current_snapshot if state else None

    def update_state(self, environment: str, snapshot_hash: str | None) -> EnvironmentState:
        state = EnvironmentState(
            environment=validate_environment(environment),
            current_snapshot=snapshot_hash,
            updated_at=datetime.now(UTC),
        )
        self._states[environment] = state
        return state

    def get_all_states(self) -> list[EnvironmentState]:
        return [self._states[name] for name in sorted(self._states)]

    def list_environments(self) -> list[str]:
        return sorted(self._states)
