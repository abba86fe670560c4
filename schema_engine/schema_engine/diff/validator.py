"""Pre-flight validation of step lists and transitions.

Validation never raises for problems in the input; it collects every problem
into a list of :class:`StepValidationError` so callers can show them all at
once.  A step that fails validation is skipped and the remaining steps are
checked against the schema as it was before the failing step.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.diff.apply import WorkingSchema
from schema_engine.errors import StructuralError
from schema_engine.models.schema import Model
from schema_engine.models.steps import MigrationStep
from schema_engine.models.transition import EMPTY_HASH, Transition

logger = logging.getLogger(__name__)


class StepValidationError(BaseModel):
    """One problem found while validating a migration."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., description="Human-readable description.")
    step: int | None = Field(default=None, description="Index of the offending step, if any.")
    table: str | None = Field(default=None, description="Table the offending step targets.")
    field: str | None = Field(default=None, description="Record field at fault, for structural problems.")


def validate_steps(steps: list[MigrationStep], current_model: Model) -> list[StepValidationError]:
    """Check that every step can be applied on top of *current_model*.

    Covers the dependency rules: the target table exists (or was added by an
    earlier step), referenced tables and columns exist, objects being added
    do not exist yet, and objects being dropped are not still depended on.
    """
    schema = WorkingSchema(current_model)
    errors: list[StepValidationError] = []
    for position, step in enumerate(steps):
        try:
            schema.apply(step)
        except StructuralError as exc:
            errors.append(StepValidationError(message=str(exc), step=position, table=step.table))

    if errors:
        logger.info("Step validation found %d problem(s) in %d step(s)", len(errors), len(steps))
    return errors


def validate_transition(transition: Transition, current_model: Model) -> list[StepValidationError]:
    """Validate a transition against the model it is about to be applied to.

    Checks the content hash, that ``from_hash`` matches *current_model*
    (an empty ``from_hash`` matches only an empty model), and the steps.
    """
    errors: list[StepValidationError] = []

    if transition.expected_hash() != transition.hash:
        errors.append(StepValidationError(message="Transition hash does not match its content", field="hash"))

    if transition.from_hash == EMPTY_HASH:
        if current_model.tables:
            errors.append(
                StepValidationError(
                    message="Initial transition cannot be applied to a non-empty model",
                    field="from_hash",
                )
            )
    elif transition.from_hash != current_model.hash:
        errors.append(
            StepValidationError(
                message=(
                    f"Transition from_hash ({transition.from_hash[:8]}) does not match "
                    f"current model hash ({current_model.hash[:8]})"
                ),
                field="from_hash",
            )
        )

    errors.extend(validate_steps(transition.steps, current_model))
    return errors
