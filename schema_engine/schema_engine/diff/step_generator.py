"""Turn a :class:`SchemaDiff` into an ordered list of migration steps.

Steps are emitted in ten phases (see :class:`StepType`); within a phase they
are ordered by table name and then by the name of the object they touch.  The
phase order guarantees that

* foreign keys are dropped before the tables and columns they depend on, and
  added after everything they reference exists;
* indexes are dropped before their columns disappear and added after their
  columns exist;
* a column whose type changes has its indexes and foreign keys (on either
  side of the relation) detached before the change and re-attached after.
"""

from __future__ import annotations

import logging

from schema_engine.models.diff import ColumnModification, SchemaDiff
from schema_engine.models.schema import Column, Model, Table
from schema_engine.models.steps import (
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
    step_target,
)

logger = logging.getLogger(__name__)

PHASE_ORDER: dict[str, int] = {member.value: position for position, member in enumerate(StepType)}


def step_sort_key(step: MigrationStep) -> tuple[int, str, str]:
    """Phase, then table, then object name."""
    return PHASE_ORDER[step.type], step.table, step_target(step)


def ordered_table_columns(table: Table) -> list[Column]:
    """Primary-key columns first, then the rest, each group sorted by name."""
    primary = sorted((c for c in table.columns.values() if c.primary), key=lambda c: c.name)
    rest = sorted((c for c in table.columns.values() if not c.primary), key=lambda c: c.name)
    return primary + rest


def modification_changes(modification: ColumnModification) -> ColumnChanges:
    """Target values for every attribute a column modification touches."""
    after = modification.after
    values: dict[str, object] = {}
    for change in modification.changes:
        if change.field == "default":
            if after.default is None:
                values["drop_default"] = True
            else:
                values["default"] = after.default
        else:
            values[change.field] = getattr(after, change.field)
    return ColumnChanges(**values)


def _type_changed_columns(diff: SchemaDiff) -> set[tuple[str, str]]:
    """``(table, column)`` pairs whose type changes, named as in the target."""
    return {
        (table_diff.table, modification.column)
        for table_diff in diff.modified_tables
        for modification in table_diff.modified_columns
        if modification.type_changed
    }


def _detachments(
    diff: SchemaDiff,
    from_model: Model,
    to_model: Model,
) -> tuple[list[MigrationStep], list[MigrationStep]]:
    """Drop/re-add steps for indexes and FKs that depend on a type change.

    Only objects that survive the migration unchanged are detached here;
    removed or redefined objects are already dropped and added by the diff.
    """
    retyped = _type_changed_columns(diff)
    if not retyped:
        return [], []

    detach: list[MigrationStep] = []
    attach: list[MigrationStep] = []
    seen_fks: set[tuple[str, str]] = set()

    for table_name in sorted(set(from_model.tables) & set(to_model.tables)):
        before = from_model.tables[table_name]
        after = to_model.tables[table_name]

        for index in before.indexes:
            if after.get_index(index.name) != index:
                continue
            if any((table_name, column) in retyped for column in index.columns):
                detach.append(DropIndexStep(table=table_name, index=index.name))
                attach.append(AddIndexStep(table=table_name, index=index))

        for fk in before.foreign_keys:
            if after.get_foreign_key(fk.name) != fk or (table_name, fk.name) in seen_fks:
                continue
            own_side = any((table_name, column) in retyped for column in fk.columns)
            referenced_side = any((fk.references.table, column) in retyped for column in fk.references.columns)
            if own_side or referenced_side:
                seen_fks.add((table_name, fk.name))
                detach.append(DropForeignKeyStep(table=table_name, foreign_key=fk.name))
                attach.append(AddForeignKeyStep(table=table_name, foreign_key=fk))

    return detach, attach


def diff_to_steps(diff: SchemaDiff, from_model: Model, to_model: Model) -> list[MigrationStep]:
    """Generate the ordered migration steps that realise *diff*.

    Parameters
    ----------
    diff:
        Output of :func:`~schema_engine.diff.schema_diff.compute_diff` for
        the same two models.
    from_model:
        The base model; source of definitions for dropped objects.
    to_model:
        The target model; source of definitions for added objects.

    Returns
    -------
    list[MigrationStep]
        Totally ordered steps.  An empty diff yields an empty list.
    """
    steps: list[MigrationStep] = []

    # Removed tables: their foreign keys are dropped explicitly, their
    # indexes go with the table.
    for name in diff.removed_tables:
        table = from_model.tables[name]
        steps.extend(DropForeignKeyStep(table=name, foreign_key=fk.name) for fk in table.foreign_keys)
        steps.append(DropTableStep(table=name))

    # Added tables: columns first, then indexes and foreign keys in their
    # own phases.
    for name in diff.added_tables:
        table = to_model.tables[name]
        steps.append(AddTableStep(table=name, columns=ordered_table_columns(table)))
        steps.extend(AddIndexStep(table=name, index=index) for index in table.indexes)
        steps.extend(AddForeignKeyStep(table=name, foreign_key=fk) for fk in table.foreign_keys)

    for table_diff in diff.modified_tables:
        name = table_diff.table
        after = to_model.tables[name]

        steps.extend(DropForeignKeyStep(table=name, foreign_key=fk) for fk in table_diff.removed_foreign_keys)
        steps.extend(DropIndexStep(table=name, index=index) for index in table_diff.removed_indexes)
        steps.extend(
            RenameColumnStep(table=name, column=rename.old_name, new_name=rename.new_name)
            for rename in table_diff.renamed_columns
        )
        steps.extend(DropColumnStep(table=name, column=column) for column in table_diff.removed_columns)
        steps.extend(AddColumnStep(table=name, column=after.columns[column]) for column in table_diff.added_columns)
        steps.extend(
            ModifyColumnStep(table=name, column=mod.column, changes=modification_changes(mod))
            for mod in table_diff.modified_columns
        )
        steps.extend(AddIndexStep(table=name, index=after.get_index(index)) for index in table_diff.added_indexes)
        steps.extend(
            AddForeignKeyStep(table=name, foreign_key=after.get_foreign_key(fk))
            for fk in table_diff.added_foreign_keys
        )

    detach, attach = _detachments(diff, from_model, to_model)
    steps.extend(detach)
    steps.extend(attach)

    steps.sort(key=step_sort_key)
    logger.debug("Generated %d step(s) for %s -> %s", len(steps), diff.from_hash[:8], diff.to_hash[:8])
    return steps
