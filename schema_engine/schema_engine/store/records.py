"""Constructors for content-addressed snapshot and transition records."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from schema_engine.builder.model_builder import entities_to_model
from schema_engine.models.schema import Model
from schema_engine.models.snapshot import Snapshot, SnapshotMetadata
from schema_engine.models.steps import MigrationStep
from schema_engine.models.transition import Transition, TransitionMetadata, compute_transition_hash


def create_snapshot(
    entities: Mapping[str, Any],
    metadata: SnapshotMetadata | None = None,
    parent_hash: str | None = None,
) -> Snapshot:
    """Build a snapshot addressed by the hash of the model *entities* build into.

    The entity definitions are retained as given so the model can be
    regenerated and audited later.

    Raises
    ------
    StructuralError
        If *entities* do not build into a valid model.
    """
    model = entities_to_model(entities)
    meta = metadata or SnapshotMetadata()
    if parent_hash is not None:
        meta = meta.model_copy(update={"parent": parent_hash})
    return Snapshot(hash=model.hash, entities=copy.deepcopy(dict(entities)), metadata=meta)


def snapshot_model(snapshot: Snapshot) -> Model:
    """Rebuild a snapshot's model; an empty entity set gives the empty model."""
    return snapshot.to_model()


def create_transition(
    from_hash: str,
    to_hash: str,
    steps: list[MigrationStep],
    metadata: TransitionMetadata | None = None,
) -> Transition:
    """Build a transition addressed by the hash of ``from_hash``, ``to_hash`` and ``steps``.

    ``from_hash`` may be empty for the first transition of a lineage.
    """
    return Transition(
        hash=compute_transition_hash(from_hash, to_hash, steps),
        from_hash=from_hash,
        to_hash=to_hash,
        steps=list(steps),
        metadata=metadata or TransitionMetadata(),
    )
