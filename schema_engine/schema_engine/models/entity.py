"""Typed representation of parsed entity definitions.

Entity definitions arrive as loosely-typed mappings.  The entity parser turns
each one into an :class:`EntityDefinition` whose fields carry exactly one
:data:`FieldKind`, so the model builder never has to inspect raw input.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.models.schema import ColumnDefault

# ---------------------------------------------------------------------------
# Raw input shapes
# ---------------------------------------------------------------------------


class FieldSpec(BaseModel):
    """Dict form of a field definition.

    Both the camelCase keys used in entity files and their snake_case
    equivalents are accepted.  API-only keys are validated but carry no
    meaning for the schema model.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    type: str | None = Field(default=None, description="Field type or shorthand expression.")
    db_type: str | None = Field(default=None, alias="dbType", description="SQL type override.")
    db_column: str | None = Field(default=None, alias="dbColumn", description="Explicit column name.")
    primary: bool = False
    generated: bool = False
    nullable: bool | None = None
    required: bool | None = None
    default: Any = None
    index: bool = False
    indexed: bool = False
    unique: bool = False
    length: int | None = Field(default=None, gt=0)
    max_length: int | None = Field(default=None, alias="maxLength", gt=0)
    min_length: int | None = Field(default=None, alias="minLength", ge=0)
    precision: int | None = Field(default=None, gt=0)
    scale: int | None = Field(default=None, ge=0)
    enum: list[Any] | None = None
    on_delete: str | None = Field(default=None, alias="onDelete")

    # API surface only.
    api: str | bool | None = None
    api_format: str | None = Field(default=None, alias="apiFormat")
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    description: str | None = None


class EntityIndexSpec(BaseModel):
    """An explicit index declared on an entity."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fields: list[str] = Field(..., min_length=1, description="Field (or column) names, in index order.")
    name: str | None = Field(default=None, description="Index name; derived from table and columns when omitted.")
    unique: bool = False


class EntitySpec(BaseModel):
    """Full form of an entity definition."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    table: str | None = Field(default=None, description="Table name; snake_case of the entity name when omitted.")
    fields: dict[str, str | dict[str, Any]] = Field(default_factory=dict)
    indexes: list[EntityIndexSpec] = Field(default_factory=list)
    api_schema: str | None = Field(default=None, alias="apiSchema")
    description: str | None = None


# ---------------------------------------------------------------------------
# Field kinds
# ---------------------------------------------------------------------------


class PrimitiveKind(BaseModel):
    """A built-in scalar type, optionally an array of it."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["primitive"] = "primitive"
    name: str = Field(..., description="Lower-case primitive name, e.g. 'string'.")
    array: bool = False
    length: int | None = None
    min_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    enum_values: list[str] = Field(default_factory=list)
    db_type: str | None = None


class SchemaReferenceKind(BaseModel):
    """A to-one reference to another entity; becomes a foreign key."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["reference"] = "reference"
    target: str = Field(..., description="Referenced entity name.")


class SchemaArrayKind(BaseModel):
    """The to-many side of a relation (``Post[]``); produces no column."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    target: str = Field(..., description="Referenced entity name.")


FieldKind = Annotated[Union[PrimitiveKind, SchemaReferenceKind, SchemaArrayKind], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Parsed entities
# ---------------------------------------------------------------------------


class ParsedField(BaseModel):
    """One entity field with its kind and column-level attributes resolved."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Field name as declared.")
    kind: FieldKind
    column: str = Field(..., description="Column name: dbColumn when given, otherwise the field name.")
    explicit_column: bool = Field(default=False, description="Whether dbColumn was given.")
    nullable: bool = True
    primary: bool = False
    generated: bool = False
    unique: bool = False
    indexed: bool = False
    default: ColumnDefault | None = None
    on_delete: str | None = None


class EntityDefinition(BaseModel):
    """A parsed entity: its table name, fields and explicit indexes."""

    model_config = ConfigDict(frozen=True)

    name: str
    table: str
    fields: list[ParsedField] = Field(default_factory=list)
    indexes: list[EntityIndexSpec] = Field(default_factory=list)

    def get_field(self, name: str) -> ParsedField | None:
        return next((f for f in self.fields if f.name == name), None)

    @property
    def primary_fields(self) -> list[ParsedField]:
        """Explicit primary fields, or the ``id`` field when none is marked."""
        marked = [f for f in self.fields if f.primary]
        if marked:
            return marked
        fallback = self.get_field("id")
        if fallback is not None and not isinstance(fallback.kind, SchemaArrayKind):
            return [fallback]
        return []
