"""Reversal of migration steps.

Additive steps and renames carry everything needed to undo them.  Drops and
column modifications do not: undoing them needs the definitions as they were
*before* the step ran.  Those are reconstructed only from an explicit
pre-image model; nothing is ever guessed.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.errors import IrreversibleStepError
from schema_engine.models.schema import Model
from schema_engine.models.steps import (
    ADDITIVE_STEP_TYPES,
    AddColumnStep,
    AddForeignKeyStep,
    AddIndexStep,
    AddTableStep,
    ColumnChanges,
    DropColumnStep,
    DropForeignKeyStep,
    DropIndexStep,
    DropTableStep,
    MigrationStep,
    ModifyColumnStep,
    RenameColumnStep,
    StepType,
)

logger = logging.getLogger(__name__)


class ReversalResult(BaseModel):
    """Inverse steps plus the steps that could not be inverted."""

    model_config = ConfigDict(frozen=True)

    steps: list[MigrationStep] = Field(default_factory=list, description="Inverse steps, in execution order.")
    irreversible: list[MigrationStep] = Field(
        default_factory=list,
        description="Original steps with no inverse, in their original order.",
    )

    @property
    def complete(self) -> bool:
        return not self.irreversible


def is_reversible(step: MigrationStep) -> bool:
    """Whether *step* can be undone from its own payload alone."""
    return step.type in ADDITIVE_STEP_TYPES or step.type == StepType.RENAME_COLUMN.value


def _invert_with_pre_image(
    step: MigrationStep,
    pre_image: Model,
    renames: dict[tuple[str, str], str],
) -> list[MigrationStep] | None:
    """Inverse of a drop/modify step, or ``None`` when the pre-image lacks the object."""
    table = pre_image.get_table(step.table)
    if table is None:
        return None

    if isinstance(step, DropTableStep):
        # Foreign keys of a dropped table are dropped (and restored) as
        # separate steps; its indexes go with the table.
        columns = sorted(table.columns.values(), key=lambda c: (not c.primary, c.name))
        restored: list[MigrationStep] = [AddTableStep(table=table.name, columns=columns)]
        restored.extend(AddIndexStep(table=table.name, index=index) for index in table.indexes)
        return restored

    if isinstance(step, DropColumnStep):
        column = table.columns.get(step.column)
        return None if column is None else [AddColumnStep(table=step.table, column=column)]

    if isinstance(step, DropIndexStep):
        index = table.get_index(step.index)
        return None if index is None else [AddIndexStep(table=step.table, index=index)]

    if isinstance(step, DropForeignKeyStep):
        fk = table.get_foreign_key(step.foreign_key)
        return None if fk is None else [AddForeignKeyStep(table=step.table, foreign_key=fk)]

    if isinstance(step, ModifyColumnStep):
        original_name = renames.get((step.table, step.column), step.column)
        before = table.columns.get(original_name)
        if before is None:
            return None
        changes = step.changes
        values: dict[str, object] = {}
        for attr in ("type", "nullable", "primary", "generated"):
            if getattr(changes, attr) is not None:
                values[attr] = getattr(before, attr)
        if changes.default is not None or changes.drop_default:
            if before.default is None:
                values["drop_default"] = True
            else:
                values["default"] = before.default
        return [ModifyColumnStep(table=step.table, column=step.column, changes=ColumnChanges(**values))]

    return None


def invert_step(step: MigrationStep) -> MigrationStep:
    """Inverse of a self-describing step.

    Raises
    ------
    IrreversibleStepError
        If *step* is a drop or a column modification.
    """
    if isinstance(step, AddTableStep):
        return DropTableStep(table=step.table)
    if isinstance(step, AddColumnStep):
        return DropColumnStep(table=step.table, column=step.column.name)
    if isinstance(step, AddIndexStep):
        return DropIndexStep(table=step.table, index=step.index.name)
    if isinstance(step, AddForeignKeyStep):
        return DropForeignKeyStep(table=step.table, foreign_key=step.foreign_key.name)
    if isinstance(step, RenameColumnStep):
        return RenameColumnStep(table=step.table, column=step.new_name, new_name=step.column)
    raise IrreversibleStepError([step])


def reverse_steps(steps: list[MigrationStep], pre_image: Model | None = None) -> ReversalResult:
    """Build the inverse of *steps*.

    Inverses are emitted in reverse order, so executing them after *steps*
    restores the original schema.  Drop and modify steps are reconstructed
    from *pre_image* (the model *steps* were generated against); without one
    they are reported in ``irreversible``.
    """
    # new column name -> original column name, for modifications that follow a rename.
    renames: dict[tuple[str, str], str] = {
        (s.table, s.new_name): s.column for s in steps if isinstance(s, RenameColumnStep)
    }

    inverse: list[MigrationStep] = []
    irreversible: list[MigrationStep] = []
    for step in reversed(steps):
        if is_reversible(step):
            inverse.append(invert_step(step))
            continue
        restored = _invert_with_pre_image(step, pre_image, renames) if pre_image is not None else None
        if restored is None:
            irreversible.append(step)
        else:
            inverse.extend(restored)

    irreversible.reverse()
    if irreversible:
        logger.debug("%d of %d step(s) have no inverse", len(irreversible), len(steps))
    return ReversalResult(steps=inverse, irreversible=irreversible)


def require_reversible(steps: list[MigrationStep], pre_image: Model | None = None) -> list[MigrationStep]:
    """Like :func:`reverse_steps` but raise when anything is irreversible.

    Raises
    ------
    IrreversibleStepError
        Carrying every step that could not be inverted.
    """
    result = reverse_steps(steps, pre_image)
    if not result.complete:
        raise IrreversibleStepError(result.irreversible)
    return result.steps
