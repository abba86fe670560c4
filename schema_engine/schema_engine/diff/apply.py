"""Structural application of migration steps to a :class:`Model`.

No SQL is involved: applying a step list to a model yields the model the
database would have after executing the same steps.  This backs the round-trip
property ``apply_steps(a, diff_to_steps(compute_diff(a, b), a, b)) == b``,
step validation, and replay of recorded transitions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from schema_engine.errors import StructuralError
from schema_engine.models.schema import Column, ForeignKey, ForeignKeyReference, Index, Model, Table
from schema_engine.models.steps import (
    AddColumnStep,
    AddForeignKeyStep,
    AddIndexStep,
    AddTableStep,
    DropColumnStep,
    DropForeignKeyStep,
    DropIndexStep,
    DropTableStep,
    MigrationStep,
    ModifyColumnStep,
    RenameColumnStep,
)
from schema_engine.models.transition import Transition

logger = logging.getLogger(__name__)


class _WorkingTable:
    """Mutable view of one table while steps are applied."""

    def __init__(self, name: str, columns: Iterable[Column], indexes=(), foreign_keys=()) -> None:
        self.name = name
        self.columns: dict[str, Column] = {c.name: c for c in columns}
        self.indexes: dict[str, Index] = {i.name: i for i in indexes}
        self.foreign_keys: dict[str, ForeignKey] = {f.name: f for f in foreign_keys}

    @classmethod
    def from_table(cls, table: Table) -> _WorkingTable:
        return cls(table.name, table.columns.values(), table.indexes, table.foreign_keys)

    def freeze(self) -> Table:
        return Table(
            name=self.name,
            columns=dict(self.columns),
            indexes=[self.indexes[n] for n in sorted(self.indexes)],
            foreign_keys=[self.foreign_keys[n] for n in sorted(self.foreign_keys)],
        )


class WorkingSchema:
    """Mutable schema that applies one step at a time.

    Each :meth:`apply` either fully applies the step or raises
    :class:`StructuralError` and leaves the schema untouched.
    """

    def __init__(self, model: Model | None = None) -> None:
        source = model or Model.empty()
        self.tables: dict[str, _WorkingTable] = {
            name: _WorkingTable.from_table(table) for name, table in source.tables.items()
        }

    def to_model(self) -> Model:
        return Model(tables={name: table.freeze() for name, table in self.tables.items()})

    # -- Lookups ------------------------------------------------------------

    def _table(self, step: MigrationStep) -> _WorkingTable:
        table = self.tables.get(step.table)
        if table is None:
            raise StructuralError(f"{step.type}: table does not exist", entity=step.table)
        return table

    @staticmethod
    def _require_columns(table: _WorkingTable, columns: list[str], what: str) -> None:
        missing = [c for c in columns if c not in table.columns]
        if missing:
            raise StructuralError(f"{what} references unknown column(s) {', '.join(missing)}", entity=table.name)

    def _referencing_foreign_keys(self, table: str, column: str | None = None) -> list[tuple[str, ForeignKey]]:
        """Foreign keys on *other* tables that point at *table* (and *column*)."""
        found = []
        for owner in sorted(self.tables):
            if owner == table:
                continue
            for fk in self.tables[owner].foreign_keys.values():
                if fk.references.table == table and (column is None or column in fk.references.columns):
                    found.append((owner, fk))
        return found

    # -- Dispatch -----------------------------------------------------------

    def apply(self, step: MigrationStep) -> None:
        handler = getattr(self, f"_apply_{step.type}")
        handler(step)

    def _apply_add_table(self, step: AddTableStep) -> None:
        if step.table in self.tables:
            raise StructuralError("add_table: table already exists", entity=step.table)
        names = [c.name for c in step.columns]
        if len(set(names)) != len(names):
            raise StructuralError("add_table: duplicate column names", entity=step.table)
        self.tables[step.table] = _WorkingTable(step.table, step.columns)

    def _apply_drop_table(self, step: DropTableStep) -> None:
        self._table(step)
        referencing = self._referencing_foreign_keys(step.table)
        if referencing:
            owners = ", ".join(f"{owner}.{fk.name}" for owner, fk in referencing)
            raise StructuralError(f"drop_table: still referenced by {owners}", entity=step.table)
        del self.tables[step.table]

    def _apply_add_column(self, step: AddColumnStep) -> None:
        table = self._table(step)
        if step.column.name in table.columns:
            raise StructuralError("add_column: column already exists", entity=step.table, field=step.column.name)
        table.columns[step.column.name] = step.column

    def _apply_drop_column(self, step: DropColumnStep) -> None:
        table = self._table(step)
        if step.column not in table.columns:
            raise StructuralError("drop_column: column does not exist", entity=step.table, field=step.column)
        dependants = [i.name for i in table.indexes.values() if step.column in i.columns]
        dependants += [f.name for f in table.foreign_keys.values() if step.column in f.columns]
        dependants += [f"{owner}.{fk.name}" for owner, fk in self._referencing_foreign_keys(step.table, step.column)]
        if dependants:
            raise StructuralError(
                f"drop_column: still used by {', '.join(dependants)}", entity=step.table, field=step.column
            )
        del table.columns[step.column]

    def _apply_rename_column(self, step: RenameColumnStep) -> None:
        table = self._table(step)
        if step.column not in table.columns:
            raise StructuralError("rename_column: column does not exist", entity=step.table, field=step.column)
        if step.new_name in table.columns:
            raise StructuralError("rename_column: target name already exists", entity=step.table, field=step.new_name)

        def rename(columns: list[str]) -> list[str]:
            return [step.new_name if c == step.column else c for c in columns]

        column = table.columns.pop(step.column)
        table.columns[step.new_name] = column.model_copy(update={"name": step.new_name})

        # The database carries dependent objects across a rename.
        for name, index in list(table.indexes.items()):
            table.indexes[name] = index.model_copy(update={"columns": rename(index.columns)})
        for name, fk in list(table.foreign_keys.items()):
            table.foreign_keys[name] = fk.model_copy(update={"columns": rename(fk.columns)})
        for owner, fk in self._referencing_foreign_keys(step.table, step.column):
            reference = ForeignKeyReference(table=fk.references.table, columns=rename(fk.references.columns))
            self.tables[owner].foreign_keys[fk.name] = fk.model_copy(update={"references": reference})

    def _apply_modify_column(self, step: ModifyColumnStep) -> None:
        table = self._table(step)
        column = table.columns.get(step.column)
        if column is None:
            raise StructuralError("modify_column: column does not exist", entity=step.table, field=step.column)

        changes = step.changes
        data = column.model_dump()
        for attr in ("type", "nullable", "primary", "generated"):
            value = getattr(changes, attr)
            if value is not None:
                data[attr] = value
        if changes.drop_default:
            data["default"] = None
        elif changes.default is not None:
            data["default"] = changes.default
        table.columns[step.column] = Column.model_validate(data)

    def _apply_add_index(self, step: AddIndexStep) -> None:
        table = self._table(step)
        if step.index.name in table.indexes:
            raise StructuralError(f"add_index: index {step.index.name!r} already exists", entity=step.table)
        self._require_columns(table, step.index.columns, f"Index {step.index.name!r}")
        table.indexes[step.index.name] = step.index

    def _apply_drop_index(self, step: DropIndexStep) -> None:
        table = self._table(step)
        if step.index not in table.indexes:
            raise StructuralError(f"drop_index: index {step.index!r} does not exist", entity=step.table)
        del table.indexes[step.index]

    def _apply_add_foreign_key(self, step: AddForeignKeyStep) -> None:
        table = self._table(step)
        fk = step.foreign_key
        if fk.name in table.foreign_keys:
            raise StructuralError(f"add_foreign_key: {fk.name!r} already exists", entity=step.table)
        self._require_columns(table, fk.columns, f"Foreign key {fk.name!r}")
        target = self.tables.get(fk.references.table)
        if target is None:
            raise StructuralError(
                f"add_foreign_key: referenced table {fk.references.table!r} does not exist", entity=step.table
            )
        self._require_columns(target, fk.references.columns, f"Foreign key {fk.name!r}")
        table.foreign_keys[fk.name] = fk

    def _apply_drop_foreign_key(self, step: DropForeignKeyStep) -> None:
        table = self._table(step)
        if step.foreign_key not in table.foreign_keys:
            raise StructuralError(f"drop_foreign_key: {step.foreign_key!r} does not exist", entity=step.table)
        del table.foreign_keys[step.foreign_key]


def apply_steps(model: Model, steps: Iterable[MigrationStep]) -> Model:
    """Apply *steps* to *model* in order and return the resulting model.

    Raises
    ------
    StructuralError
        On the first step that cannot be applied (unknown table or column,
        duplicate object, a drop that would orphan a dependant, ...).
    """
    schema = WorkingSchema(model)
    for position, step in enumerate(steps):
        try:
            schema.apply(step)
        except StructuralError as exc:
            raise StructuralError(f"Step {position} ({step.type}) failed: {exc}") from exc
    return schema.to_model()


def replay_transitions(transitions: Iterable[Transition], base: Model | None = None) -> Model:
    """Apply every transition's steps in order, starting from *base* (empty by default)."""
    model = base or Model.empty()
    count = 0
    for transition in transitions:
        model = apply_steps(model, transition.steps)
        count += 1
    logger.debug("Replayed %d transition(s) to model %s", count, model.hash[:8])
    return model
