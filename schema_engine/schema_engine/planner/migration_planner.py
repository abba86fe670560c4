"""Caller-side orchestration of the engine's pure pieces.

The planner wires model building, diffing, path finding and safety
assessment together for the common workflows: recording a new transition
between two snapshots, planning a deployment of an environment to a target
snapshot, planning a rollback, and advancing environment state once a
transition's SQL has been committed.

Nothing here executes SQL.  State only advances through
:func:`record_applied` / :func:`record_rolled_back`, one transition at a
time, so a failure part-way through a multi-transition path leaves the
environment at the last snapshot that was actually applied.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.config import Settings, load_settings
from schema_engine.diff.reverse import reverse_steps
from schema_engine.diff.schema_diff import RenameMap, compute_diff
from schema_engine.diff.step_generator import diff_to_steps
from schema_engine.errors import SchemaConflictError, SnapshotNotFoundError, StructuralError, TransitionNotFoundError
from schema_engine.graph.path_finder import RollbackPath, TransitionPath, find_reverse_path, require_path
from schema_engine.models.schema import Model
from schema_engine.models.snapshot import Snapshot
from schema_engine.models.state import EnvironmentState
from schema_engine.models.steps import MigrationStep
from schema_engine.models.transition import EMPTY_HASH, Transition, TransitionMetadata
from schema_engine.safety.assessor import (
    EnvironmentValidation,
    SafetyAssessment,
    assess_path,
    validate_for_environment,
)
from schema_engine.store.base import SchemaStore
from schema_engine.store.records import create_transition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class DeploymentPlan(BaseModel):
    """Transitions that move an environment to a target snapshot."""

    model_config = ConfigDict(frozen=True)

    environment: str
    from_hash: str = Field(..., description="Snapshot currently applied; empty when nothing is.")
    to_hash: str = Field(..., description="Target snapshot.")
    path: TransitionPath
    assessment: SafetyAssessment
    validation: EnvironmentValidation

    @property
    def is_noop(self) -> bool:
        return self.path.is_empty

    @property
    def steps(self) -> list[MigrationStep]:
        return self.path.steps

    @property
    def allowed(self) -> bool:
        return self.validation.valid


class RollbackPlan(BaseModel):
    """Inverse steps that return an environment to an earlier snapshot."""

    model_config = ConfigDict(frozen=True)

    environment: str
    from_hash: str
    to_hash: str
    path: RollbackPath
    steps: list[MigrationStep] = Field(default_factory=list, description="Inverse steps, in execution order.")
    irreversible: list[MigrationStep] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.path.is_empty

    @property
    def executable(self) -> bool:
        return not self.irreversible


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def _snapshot_model(snapshot: Snapshot) -> Model:
    model = snapshot.to_model()
    if model.hash != snapshot.hash:
        raise StructuralError(
            f"Snapshot {snapshot.hash[:8]} does not match the model its entities build ({model.hash[:8]})"
        )
    return model


def plan_transition(
    from_snapshot: Snapshot | None,
    to_snapshot: Snapshot,
    description: str = "",
    renames: RenameMap | None = None,
    retain_pre_image: bool = True,
) -> Transition:
    """Diff two snapshots and build the transition between them.

    Parameters
    ----------
    from_snapshot:
        The base snapshot, or ``None`` for the first transition of a lineage.
    renames:
        Out-of-band column renames, ``{(table, old): new}``.
    retain_pre_image:
        Keep the base model in the transition metadata so that drops and
        modifications can be reversed later.
    """
    from_model = _snapshot_model(from_snapshot) if from_snapshot is not None else Model.empty()
    to_model = _snapshot_model(to_snapshot)

    diff = compute_diff(from_model, to_model, renames)
    steps = diff_to_steps(diff, from_model, to_model)
    metadata = TransitionMetadata(
        description=description,
        pre_image=from_model if retain_pre_image else None,
    )
    transition = create_transition(
        from_snapshot.hash if from_snapshot is not None else EMPTY_HASH,
        to_snapshot.hash,
        steps,
        metadata,
    )
    logger.info(
        "Planned transition %s with %d step(s)",
        transition.hash[:8],
        len(steps),
    )
    return transition


def plan_deployment(
    store: SchemaStore,
    environment: str,
    target_hash: str,
    settings: Settings | None = None,
) -> DeploymentPlan:
    """Plan moving *environment* from its current snapshot to *target_hash*.

    Raises
    ------
    SnapshotNotFoundError
        If the target snapshot is not stored.
    SchemaConflictError
        If no recorded transition chain leads there.
    """
    settings = settings or load_settings()
    if not store.snapshot_exists(target_hash):
        raise SnapshotNotFoundError(target_hash)

    current = store.get_current_snapshot(environment) or EMPTY_HASH
    path = require_path(store, current, target_hash)
    assessment = assess_path(path.transitions)
    validation = validate_for_environment(
        path.steps,
        environment,
        settings.protected_environments,
        settings.allow_destructive,
    )

    logger.info(
        "Deployment plan for %s: %s -> %s via %d transition(s), level=%s",
        environment,
        settings.short_hash(current),
        settings.short_hash(target_hash),
        path.length,
        assessment.level.value,
    )
    return DeploymentPlan(
        environment=environment,
        from_hash=current,
        to_hash=target_hash,
        path=path,
        assessment=assessment,
        validation=validation,
    )


def plan_rollback(store: SchemaStore, environment: str, target_hash: str) -> RollbackPlan:
    """Plan returning *environment* to an earlier snapshot.

    Inverse steps are reconstructed from each transition's retained
    pre-image; steps that cannot be reversed are reported in
    ``irreversible`` rather than guessed.

    Raises
    ------
    SchemaConflictError
        If *target_hash* is not an ancestor of the current snapshot.
    """
    current = store.get_current_snapshot(environment) or EMPTY_HASH
    rollback = find_reverse_path(store, current, target_hash)
    if rollback is None:
        raise SchemaConflictError(current, target_hash)

    steps: list[MigrationStep] = []
    irreversible: list[MigrationStep] = []
    for transition in rollback.transitions:
        result = reverse_steps(transition.steps, transition.metadata.pre_image)
        steps.extend(result.steps)
        irreversible.extend(result.irreversible)

    if irreversible:
        logger.warning(
            "Rollback of %s to %s has %d irreversible step(s)",
            environment,
            target_hash[:8] or "<empty>",
            len(irreversible),
        )
    return RollbackPlan(
        environment=environment,
        from_hash=current,
        to_hash=target_hash,
        path=rollback,
        steps=steps,
        irreversible=irreversible,
    )


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


def record_applied(store: SchemaStore, environment: str, transition: Transition) -> EnvironmentState:
    """Advance *environment* past *transition* once its SQL has committed.

    Raises
    ------
    TransitionNotFoundError
        If the transition was never saved.
    SchemaConflictError
        If the environment is not at the transition's ``from_hash``.
    """
    if not store.transition_exists(transition.hash):
        raise TransitionNotFoundError(transition.hash)
    current = store.get_current_snapshot(environment) or EMPTY_HASH
    if current != transition.from_hash:
        raise SchemaConflictError(current, transition.to_hash)
    return store.update_state(environment, transition.to_hash)


def record_rolled_back(store: SchemaStore, environment: str, transition: Transition) -> EnvironmentState:
    """Move *environment* back across *transition* once its inverse has committed."""
    if not store.transition_exists(transition.hash):
        raise TransitionNotFoundError(transition.hash)
    current = store.get_current_snapshot(environment) or EMPTY_HASH
    if current != transition.to_hash:
        raise SchemaConflictError(current, transition.from_hash)
    return store.update_state(environment, transition.from_hash or None)
