"""Shortest-path queries over the transition graph.

Forward paths follow transitions in their recorded direction.  Rollback
paths walk the same edges backwards; no reverse transitions are ever
invented, and steps that cannot be undone are reported rather than guessed.

Traversal is breadth-first and deterministic: the outgoing (or incoming)
transitions of a snapshot are explored in ``(created_at, hash)`` order, so
when two equally short paths exist the one using earlier transitions wins.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field

from schema_engine.diff.reverse import reverse_steps
from schema_engine.errors import SchemaConflictError
from schema_engine.graph.transition_graph import build_transition_graph
from schema_engine.models.steps import MigrationStep
from schema_engine.models.transition import Transition
from schema_engine.store.base import SchemaStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TransitionPath(BaseModel):
    """An ordered chain of transitions from one snapshot to another."""

    model_config = ConfigDict(frozen=True)

    from_hash: str
    to_hash: str
    transitions: list[Transition] = Field(default_factory=list, description="Transitions in execution order.")

    @property
    def is_empty(self) -> bool:
        return not self.transitions

    @property
    def length(self) -> int:
        return len(self.transitions)

    @property
    def hashes(self) -> list[str]:
        return [t.hash for t in self.transitions]

    @property
    def steps(self) -> list[MigrationStep]:
        return [step for t in self.transitions for step in t.steps]


class RollbackPath(BaseModel):
    """Transitions to undo, most recent first, plus the steps that cannot be undone."""

    model_config = ConfigDict(frozen=True)

    from_hash: str = Field(..., description="Snapshot currently applied.")
    to_hash: str = Field(..., description="Earlier snapshot to return to.")
    transitions: list[Transition] = Field(default_factory=list, description="Transitions in rollback order.")
    irreversible: list[MigrationStep] = Field(
        default_factory=list,
        description="Steps with neither a self-describing inverse nor a retained pre-image.",
    )

    @property
    def is_empty(self) -> bool:
        return not self.transitions

    @property
    def reversible(self) -> bool:
        return not self.irreversible


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def _bfs(
    start: str,
    goal: str | None,
    neighbours: Callable[[str], list[Transition]],
    next_node: Callable[[Transition], str],
) -> tuple[dict[str, Transition], bool]:
    """Breadth-first search; returns ``(via, found)``.

    ``via[node]`` is the transition through which *node* was first reached.
    """
    via: dict[str, Transition] = {}
    visited: set[str] = {start}
    queue: deque[str] = deque([start])

    while queue:
        current = queue.popleft()
        for transition in neighbours(current):
            if transition.from_hash == transition.to_hash:
                continue
            node = next_node(transition)
            if node in visited:
                continue
            visited.add(node)
            via[node] = transition
            if node == goal:
                return via, True
            queue.append(node)

    return via, False


def find_path(store: SchemaStore, from_hash: str, to_hash: str) -> TransitionPath | None:
    """Shortest forward path from *from_hash* to *to_hash*.

    Returns an empty path when both hashes are equal and ``None`` when no
    recorded chain connects them (a schema conflict).
    """
    if from_hash == to_hash:
        return TransitionPath(from_hash=from_hash, to_hash=to_hash)

    via, found = _bfs(from_hash, to_hash, store.transitions_from, lambda t: t.to_hash)
    if not found:
        logger.debug("No path from %s to %s", from_hash[:8] or "<empty>", to_hash[:8])
        return None

    chain: list[Transition] = []
    node = to_hash
    while node != from_hash:
        transition = via[node]
        chain.append(transition)
        node = transition.from_hash
    chain.reverse()
    return TransitionPath(from_hash=from_hash, to_hash=to_hash, transitions=chain)


def require_path(store: SchemaStore, from_hash: str, to_hash: str) -> TransitionPath:
    """Like :func:`find_path` but raise :class:`SchemaConflictError` when disconnected."""
    path = find_path(store, from_hash, to_hash)
    if path is None:
        raise SchemaConflictError(from_hash, to_hash)
    return path


def find_reverse_path(store: SchemaStore, from_hash: str, to_hash: str) -> RollbackPath | None:
    """Path for rolling back from *from_hash* (current) to an earlier *to_hash*.

    Walks incoming transitions from the current snapshot.  The returned
    transitions are in the order they must be undone.  ``irreversible``
    collects every step that cannot be reversed: drops and modifications of
    transitions that retained no pre-image.
    """
    if from_hash == to_hash:
        return RollbackPath(from_hash=from_hash, to_hash=to_hash)

    via, found = _bfs(from_hash, to_hash, store.transitions_to, lambda t: t.from_hash)
    if not found:
        logger.debug("No rollback path from %s to %s", from_hash[:8], to_hash[:8] or "<empty>")
        return None

    # via[node] is the transition leaving *node* towards the current snapshot.
    chain: list[Transition] = []
    node = to_hash
    while node != from_hash:
        transition = via[node]
        chain.append(transition)
        node = transition.to_hash
    chain.reverse()

    irreversible: list[MigrationStep] = []
    for transition in chain:
        irreversible.extend(reverse_steps(transition.steps, transition.metadata.pre_image).irreversible)

    return RollbackPath(from_hash=from_hash, to_hash=to_hash, transitions=chain, irreversible=irreversible)


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------


def path_exists(store: SchemaStore, from_hash: str, to_hash: str) -> bool:
    return find_path(store, from_hash, to_hash) is not None


def get_reachable_snapshots(store: SchemaStore, snapshot_hash: str) -> set[str]:
    """Every snapshot reachable forward from *snapshot_hash* (excluding itself)."""
    via, _ = _bfs(snapshot_hash, None, store.transitions_from, lambda t: t.to_hash)
    return set(via)


def get_predecessor_snapshots(store: SchemaStore, snapshot_hash: str) -> set[str]:
    """Every snapshot from which *snapshot_hash* is reachable (excluding itself)."""
    via, _ = _bfs(snapshot_hash, None, store.transitions_to, lambda t: t.from_hash)
    return set(via)


def get_direct_transition(store: SchemaStore, from_hash: str, to_hash: str) -> Transition | None:
    """The earliest transition connecting the two snapshots directly, if any."""
    return next((t for t in store.transitions_from(from_hash) if t.to_hash == to_hash), None)


def find_all_paths(
    store: SchemaStore,
    from_hash: str,
    to_hash: str,
    max_length: int | None = None,
) -> list[TransitionPath]:
    """Every simple forward path between two snapshots, shortest first.

    Parallel transitions between the same snapshots yield distinct paths.
    Ties are ordered by the transition hashes along the path.
    """
    if from_hash == to_hash:
        return [TransitionPath(from_hash=from_hash, to_hash=to_hash)]

    graph = build_transition_graph(store)
    if from_hash not in graph or to_hash not in graph:
        return []

    paths: list[TransitionPath] = []
    for edges in nx.all_simple_edge_paths(graph, from_hash, to_hash, cutoff=max_length):
        transitions = [graph.edges[u, v, key]["transition"] for u, v, key in edges]
        paths.append(TransitionPath(from_hash=from_hash, to_hash=to_hash, transitions=transitions))

    paths.sort(key=lambda p: (p.length, p.hashes))
    return paths
