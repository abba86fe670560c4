"""Canonical relational schema model.

A :class:`Model` is the hashable representation of a whole schema at one
point in time.  It is built by the model builder (from entity definitions or
from a live catalog) and is immutable once built.

The ``hash`` is derived from a canonical serialization in which tables,
columns, indexes, and foreign keys are all ordered by name.  Two models with
the same structure therefore share a hash no matter in which order their
parts were declared.  Column order *inside* an index or foreign key is
significant and preserved.
"""

from __future__ import annotations

from enum import Enum
from functools import cached_property
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from schema_engine.hashing import content_hash

# ---------------------------------------------------------------------------
# Column defaults
# ---------------------------------------------------------------------------


class DefaultKind(str, Enum):
    """Whether a default is a literal value or a database expression."""

    LITERAL = "LITERAL"
    EXPRESSION = "EXPRESSION"


class ColumnDefault(BaseModel):
    """A column default: either a literal value or an expression tag like ``now``."""

    model_config = ConfigDict(frozen=True)

    kind: DefaultKind = Field(..., description="LITERAL or EXPRESSION.")
    value: bool | int | float | str | None = Field(
        default=None,
        description="Literal value, or the expression name (e.g. 'now', 'gen_uuid').",
    )

    @classmethod
    def literal(cls, value: bool | int | float | str | None) -> ColumnDefault:
        return cls(kind=DefaultKind.LITERAL, value=value)

    @classmethod
    def expression(cls, name: str) -> ColumnDefault:
        return cls(kind=DefaultKind.EXPRESSION, value=name)

    @property
    def is_expression(self) -> bool:
        return self.kind == DefaultKind.EXPRESSION


# ---------------------------------------------------------------------------
# Schema parts
# ---------------------------------------------------------------------------


class Column(BaseModel):
    """A single column.  Primary-key columns are never nullable."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Database column name.")
    type: str = Field(..., min_length=1, description="Normalized SQL type, e.g. 'VARCHAR(255)'.")
    nullable: bool = Field(default=True, description="Whether the column accepts NULLs.")
    primary: bool = Field(default=False, description="Whether the column is part of the primary key.")
    default: ColumnDefault | None = Field(default=None, description="Default value or expression.")
    generated: bool = Field(default=False, description="Identity / auto-generated column.")

    @model_validator(mode="before")
    @classmethod
    def primary_is_not_null(cls, data: Any) -> Any:
        # Source nullability metadata is ignored for primary keys.
        if isinstance(data, dict) and data.get("primary"):
            data = {**data, "nullable": False}
        return data


class Index(BaseModel):
    """A named index over an ordered list of columns."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Index name, unique within the schema.")
    columns: list[str] = Field(..., min_length=1, description="Indexed columns, in index order.")
    unique: bool = Field(default=False, description="Whether this is a UNIQUE index.")


class ForeignKeyReference(BaseModel):
    """Target side of a foreign key."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1, description="Referenced table.")
    columns: list[str] = Field(..., min_length=1, description="Referenced columns.")


class ForeignKey(BaseModel):
    """A named foreign key constraint."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Constraint name.")
    columns: list[str] = Field(..., min_length=1, description="Source columns on the owning table.")
    references: ForeignKeyReference = Field(..., description="Referenced table and columns.")
    on_delete: str | None = Field(default=None, description="ON DELETE action, e.g. 'CASCADE'.")


class Table(BaseModel):
    """A table: columns keyed by name plus its indexes and foreign keys."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Table name.")
    columns: dict[str, Column] = Field(default_factory=dict, description="Columns keyed by column name.")
    indexes: list[Index] = Field(default_factory=list, description="Indexes declared on this table.")
    foreign_keys: list[ForeignKey] = Field(default_factory=list, description="Foreign keys owned by this table.")

    @property
    def primary_key(self) -> list[str]:
        return sorted(name for name, col in self.columns.items() if col.primary)

    def get_index(self, name: str) -> Index | None:
        return next((idx for idx in self.indexes if idx.name == name), None)

    def get_foreign_key(self, name: str) -> ForeignKey | None:
        return next((fk for fk in self.foreign_keys if fk.name == name), None)

    def canonical(self) -> dict[str, Any]:
        """Order-independent form used for hashing."""
        return {
            "name": self.name,
            "columns": {name: self.columns[name].model_dump(mode="json") for name in sorted(self.columns)},
            "indexes": [idx.model_dump(mode="json") for idx in sorted(self.indexes, key=lambda i: i.name)],
            "foreign_keys": [fk.model_dump(mode="json") for fk in sorted(self.foreign_keys, key=lambda f: f.name)],
        }


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


def compute_model_hash(tables: dict[str, Table]) -> str:
    """SHA-256 over the canonical serialization of *tables*."""
    return content_hash({"tables": [tables[name].canonical() for name in sorted(tables)]})


class Model(BaseModel):
    """Canonical, hashable representation of a full schema.

    ``hash`` is computed from ``tables`` and never stored independently, so a
    model deserialized from disk can never carry a stale hash.
    """

    model_config = ConfigDict(frozen=True)

    tables: dict[str, Table] = Field(default_factory=dict, description="Tables keyed by table name.")

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def hash(self) -> str:
        return compute_model_hash(self.tables)

    @classmethod
    def empty(cls) -> Model:
        return cls(tables={})

    @property
    def table_names(self) -> list[str]:
        return sorted(self.tables)

    def get_table(self, name: str) -> Table | None:
        return self.tables.get(name)

    def same_structure(self, other: Model) -> bool:
        return self.hash == other.hash
