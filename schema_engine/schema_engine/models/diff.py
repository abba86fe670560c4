"""Diff models for comparing two schema models.

A :class:`SchemaDiff` classifies every table as added, removed, or present in
both; tables present in both carry a :class:`TableDiff` only when something
inside them changed.  All lists are sorted so identical inputs always produce
byte-identical JSON.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.models.schema import Column


class FieldChange(BaseModel):
    """Before/after value of one column attribute."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Attribute name: type, nullable, default, primary, generated.")
    old: Any = Field(default=None, description="Value in the base model.")
    new: Any = Field(default=None, description="Value in the target model.")


class ColumnModification(BaseModel):
    """A column present on both sides whose definition changed."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(..., description="Column name in the target model.")
    before: Column = Field(..., description="Full definition in the base model.")
    after: Column = Field(..., description="Full definition in the target model.")
    changes: list[FieldChange] = Field(default_factory=list, description="Field-level deltas.")

    def changed(self, field: str) -> bool:
        return any(c.field == field for c in self.changes)

    @property
    def type_changed(self) -> bool:
        return self.changed("type")


class ColumnRename(BaseModel):
    """An out-of-band rename: one removed column reinterpreted as renamed."""

    model_config = ConfigDict(frozen=True)

    old_name: str
    new_name: str


class TableDiff(BaseModel):
    """Changes inside a table that exists in both models."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., description="Table name.")
    added_columns: list[str] = Field(default_factory=list)
    removed_columns: list[str] = Field(default_factory=list)
    modified_columns: list[ColumnModification] = Field(default_factory=list)
    renamed_columns: list[ColumnRename] = Field(default_factory=list)
    added_indexes: list[str] = Field(default_factory=list)
    removed_indexes: list[str] = Field(default_factory=list)
    added_foreign_keys: list[str] = Field(default_factory=list)
    removed_foreign_keys: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_columns
            or self.removed_columns
            or self.modified_columns
            or self.renamed_columns
            or self.added_indexes
            or self.removed_indexes
            or self.added_foreign_keys
            or self.removed_foreign_keys
        )

    def get_modification(self, column: str) -> ColumnModification | None:
        return next((m for m in self.modified_columns if m.column == column), None)


class SchemaDiff(BaseModel):
    """Structural difference between a base and a target model."""

    model_config = ConfigDict(frozen=True)

    from_hash: str = Field(default="", description="Hash of the base model.")
    to_hash: str = Field(default="", description="Hash of the target model.")
    added_tables: list[str] = Field(default_factory=list, description="Tables only in the target.")
    removed_tables: list[str] = Field(default_factory=list, description="Tables only in the base.")
    modified_tables: list[TableDiff] = Field(
        default_factory=list,
        description="Non-empty per-table diffs for tables in both models, sorted by table.",
    )

    @property
    def is_empty(self) -> bool:
        return not (self.added_tables or self.removed_tables or self.modified_tables)

    def get_table_diff(self, table: str) -> TableDiff | None:
        return next((t for t in self.modified_tables if t.table == table), None)
