"""Structural differencer for canonical schema models.

Compares two :class:`Model` objects table by table and produces a
deterministic :class:`SchemaDiff`.  Columns are matched by name, indexes and
foreign keys by name; an index or foreign key whose definition changed under
the same name is reported as both removed and added.

Renames are never inferred from similarity.  A caller that *knows* a column
was renamed passes the mapping explicitly; otherwise a rename shows up as one
removed and one added column.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from schema_engine.errors import StructuralError
from schema_engine.models.diff import ColumnModification, ColumnRename, FieldChange, SchemaDiff, TableDiff
from schema_engine.models.schema import Column, Model, Table

logger = logging.getLogger(__name__)

# Column attributes compared by the differencer, in report order.
COMPARED_FIELDS: tuple[str, ...] = ("type", "nullable", "default", "primary", "generated")

RenameMap = Mapping[tuple[str, str], str]


def column_changes(before: Column, after: Column) -> list[FieldChange]:
    """Field-level deltas between two column definitions (names excluded)."""
    changes: list[FieldChange] = []
    for field in COMPARED_FIELDS:
        old = getattr(before, field)
        new = getattr(after, field)
        if old != new:
            changes.append(FieldChange(field=field, old=old, new=new))
    return changes


def _named_delta(before: list, after: list) -> tuple[list[str], list[str]]:
    """``(added, removed)`` names for two lists of named definitions."""
    old = {item.name: item for item in before}
    new = {item.name: item for item in after}
    added = sorted(name for name in new if name not in old or old[name] != new[name])
    removed = sorted(name for name in old if name not in new or old[name] != new[name])
    return added, removed


def _check_renames(before: Table, after: Table, renames: dict[str, str]) -> None:
    targets: set[str] = set()
    for old, new in renames.items():
        if old not in before.columns:
            raise StructuralError(f"Cannot rename unknown column {old!r}", entity=before.name)
        if old in after.columns:
            raise StructuralError(f"Renamed column {old!r} still exists in the target", entity=before.name)
        if new not in after.columns:
            raise StructuralError(f"Rename target {new!r} does not exist in the target", entity=before.name)
        if new in before.columns:
            raise StructuralError(f"Rename target {new!r} already exists in the base", entity=before.name)
        if new in targets:
            raise StructuralError(f"Two columns renamed to {new!r}", entity=before.name)
        targets.add(new)


def diff_tables(before: Table, after: Table, renames: Mapping[str, str] | None = None) -> TableDiff:
    """Diff two versions of the same table.

    Parameters
    ----------
    renames:
        ``old_column -> new_column`` for columns known to have been renamed.
    """
    rename_map = dict(renames or {})
    _check_renames(before, after, rename_map)
    renamed_new = set(rename_map.values())

    added_columns = sorted(c for c in after.columns if c not in before.columns and c not in renamed_new)
    removed_columns = sorted(c for c in before.columns if c not in after.columns and c not in rename_map)

    modified: list[ColumnModification] = []
    pairs = [(name, name) for name in before.columns if name in after.columns]
    pairs.extend(rename_map.items())
    for old_name, new_name in sorted(pairs, key=lambda p: p[1]):
        changes = column_changes(before.columns[old_name], after.columns[new_name])
        if changes:
            modified.append(
                ColumnModification(
                    column=new_name,
                    before=before.columns[old_name],
                    after=after.columns[new_name],
                    changes=changes,
                )
            )

    added_indexes, removed_indexes = _named_delta(before.indexes, after.indexes)
    added_fks, removed_fks = _named_delta(before.foreign_keys, after.foreign_keys)

    return TableDiff(
        table=after.name,
        added_columns=added_columns,
        removed_columns=removed_columns,
        modified_columns=modified,
        renamed_columns=[ColumnRename(old_name=o, new_name=n) for o, n in sorted(rename_map.items())],
        added_indexes=added_indexes,
        removed_indexes=removed_indexes,
        added_foreign_keys=added_fks,
        removed_foreign_keys=removed_fks,
    )


def compute_diff(from_model: Model, to_model: Model, renames: RenameMap | None = None) -> SchemaDiff:
    """Compute the structural difference between *from_model* and *to_model*.

    Parameters
    ----------
    from_model:
        The base (current) model.
    to_model:
        The target model.
    renames:
        Optional out-of-band renames, ``{(table, old_column): new_column}``.

    Returns
    -------
    SchemaDiff
        Sorted, deterministic diff.  ``compute_diff(m, m).is_empty`` holds
        for every model.

    Raises
    ------
    StructuralError
        If a rename refers to a table or column that does not exist on the
        expected side.
    """
    before_names = set(from_model.tables)
    after_names = set(to_model.tables)
    common = before_names & after_names

    per_table: dict[str, dict[str, str]] = {}
    for (table, old), new in (renames or {}).items():
        if table not in common:
            raise StructuralError("Renames are only supported on tables present in both models", entity=table)
        per_table.setdefault(table, {})[old] = new

    modified_tables: list[TableDiff] = []
    for name in sorted(common):
        table_diff = diff_tables(from_model.tables[name], to_model.tables[name], per_table.get(name))
        if not table_diff.is_empty:
            modified_tables.append(table_diff)

    diff = SchemaDiff(
        from_hash=from_model.hash,
        to_hash=to_model.hash,
        added_tables=sorted(after_names - before_names),
        removed_tables=sorted(before_names - after_names),
        modified_tables=modified_tables,
    )
    logger.debug(
        "Diff %s -> %s: +%d -%d ~%d tables",
        from_model.hash[:8],
        to_model.hash[:8],
        len(diff.added_tables),
        len(diff.removed_tables),
        len(diff.modified_tables),
    )
    return diff
