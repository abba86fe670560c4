"""Build a canonical :class:`Model` from entity definitions.

The build is a pure function of its input.  Entities are processed in name
order, references are resolved through a memoized primary-key lookup, and the
resulting model's hash depends only on structure, never on declaration order.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from schema_engine.builder.entity_parser import parse_entities
from schema_engine.builder.type_mapper import map_field_type
from schema_engine.errors import CircularReferenceError, StructuralError
from schema_engine.models.entity import (
    EntityDefinition,
    ParsedField,
    PrimitiveKind,
    SchemaArrayKind,
    SchemaReferenceKind,
)
from schema_engine.models.schema import Column, ForeignKey, ForeignKeyReference, Index, Model, Table

logger = logging.getLogger(__name__)


def index_name(table: str, columns: list[str], unique: bool = False) -> str:
    """Conventional index name: ``<table>_<cols>_idx`` or ``_key`` when unique."""
    suffix = "key" if unique else "idx"
    return f"{table}_{'_'.join(columns)}_{suffix}"


def foreign_key_name(table: str, columns: list[str]) -> str:
    return f"fk_{table}_{'_'.join(columns)}"


class _ModelBuilder:
    """Stateful helper for a single :func:`entities_to_model` call."""

    def __init__(self, definitions: list[EntityDefinition]) -> None:
        self._definitions = {d.name: d for d in definitions}
        self._pk_memo: dict[str, list[Column]] = {}

    # -- Primary keys -------------------------------------------------------

    def _is_primary(self, definition: EntityDefinition, field: ParsedField) -> bool:
        return any(f.name == field.name for f in definition.primary_fields)

    def primary_key(self, entity: str, chain: tuple[str, ...] = ()) -> list[Column]:
        """Primary key columns of *entity*, resolving reference keys recursively."""
        if entity in self._pk_memo:
            return self._pk_memo[entity]
        if entity in chain:
            start = chain.index(entity)
            raise CircularReferenceError([*chain[start:], entity])

        definition = self._definitions[entity]
        fields = definition.primary_fields
        if not fields:
            raise StructuralError("Referenced entity has no primary key", entity=entity)

        columns: list[Column] = []
        for field in fields:
            columns.extend(self.field_columns(definition, field, (*chain, entity)))
        self._pk_memo[entity] = columns
        return columns

    # -- Columns ------------------------------------------------------------

    def field_columns(
        self,
        definition: EntityDefinition,
        field: ParsedField,
        chain: tuple[str, ...] = (),
    ) -> list[Column]:
        """Columns generated by one field (zero for the to-many side)."""
        primary = self._is_primary(definition, field)
        kind = field.kind

        if isinstance(kind, SchemaArrayKind):
            return []

        if isinstance(kind, SchemaReferenceKind):
            target_pk = self.primary_key(kind.target, chain)
            columns = []
            for pk in target_pk:
                if field.explicit_column and len(target_pk) == 1:
                    name = field.column
                else:
                    name = f"{field.column}_{pk.name}"
                columns.append(
                    Column(
                        name=name,
                        type=pk.type,
                        nullable=field.nullable,
                        primary=primary,
                        default=field.default if len(target_pk) == 1 else None,
                    )
                )
            return columns

        assert isinstance(kind, PrimitiveKind)
        try:
            sql_type = map_field_type(
                kind.name,
                array=kind.array,
                length=kind.length,
                precision=kind.precision,
                scale=kind.scale,
                db_type=kind.db_type,
            )
        except StructuralError as exc:
            raise StructuralError(str(exc), entity=definition.name, field=field.name) from exc

        generated = field.generated or (primary and field.default is not None and field.default.is_expression)
        return [
            Column(
                name=field.column,
                type=sql_type,
                nullable=field.nullable,
                primary=primary,
                default=field.default,
                generated=generated,
            )
        ]

    def foreign_key(self, definition: EntityDefinition, field: ParsedField, columns: list[Column]) -> ForeignKey:
        assert isinstance(field.kind, SchemaReferenceKind)
        target = self._definitions[field.kind.target]
        names = [c.name for c in columns]
        return ForeignKey(
            name=foreign_key_name(definition.table, names),
            columns=names,
            references=ForeignKeyReference(
                table=target.table,
                columns=[c.name for c in self.primary_key(target.name)],
            ),
            on_delete=field.on_delete,
        )

    # -- Indexes ------------------------------------------------------------

    @staticmethod
    def _add_index(indexes: dict[str, Index], index: Index, entity: str) -> None:
        existing = indexes.get(index.name)
        if existing is None:
            indexes[index.name] = index
        elif existing != index:
            raise StructuralError(f"Conflicting definitions for index {index.name!r}", entity=entity)

    # -- Tables -------------------------------------------------------------

    def build_table(self, definition: EntityDefinition) -> Table:
        columns: dict[str, Column] = {}
        foreign_keys: list[ForeignKey] = []
        indexes: dict[str, Index] = {}
        field_to_columns: dict[str, list[str]] = {}

        for field in definition.fields:
            generated = self.field_columns(definition, field)
            for column in generated:
                if column.name in columns:
                    raise StructuralError(f"Duplicate column {column.name!r}", entity=definition.name, field=field.name)
                columns[column.name] = column
            names = [c.name for c in generated]
            field_to_columns[field.name] = names

            if isinstance(field.kind, SchemaReferenceKind):
                foreign_keys.append(self.foreign_key(definition, field, generated))

            if names and field.unique:
                self._add_index(indexes, Index(name=index_name(definition.table, names, True), columns=names, unique=True), definition.name)
            if names and field.indexed:
                self._add_index(indexes, Index(name=index_name(definition.table, names), columns=names), definition.name)

        if not columns:
            raise StructuralError("Entity produces no columns", entity=definition.name)

        for spec in definition.indexes:
            index_columns: list[str] = []
            for ref in spec.fields:
                if ref in field_to_columns and field_to_columns[ref]:
                    index_columns.extend(field_to_columns[ref])
                elif ref in columns:
                    index_columns.append(ref)
                else:
                    raise StructuralError(f"Index references unknown field {ref!r}", entity=definition.name)
            name = spec.name or index_name(definition.table, index_columns, spec.unique)
            self._add_index(indexes, Index(name=name, columns=index_columns, unique=spec.unique), definition.name)

        return Table(
            name=definition.table,
            columns=columns,
            indexes=sorted(indexes.values(), key=lambda i: i.name),
            foreign_keys=sorted(foreign_keys, key=lambda f: f.name),
        )

    def build(self) -> Model:
        tables: dict[str, Table] = {}
        owners: dict[str, str] = {}
        for name in sorted(self._definitions):
            definition = self._definitions[name]
            if definition.table in tables:
                raise StructuralError(
                    f"Table {definition.table!r} is also produced by entity {owners[definition.table]!r}",
                    entity=name,
                )
            tables[definition.table] = self.build_table(definition)
            owners[definition.table] = name
        return Model(tables=tables)


def entities_to_model(entities: Mapping[str, Any]) -> Model:
    """Build the canonical model for a set of entity definitions.

    Raises
    ------
    StructuralError
        For malformed definitions, unresolved types or references, unknown
        index fields, empty entities, and references to entities with no
        primary key.
    CircularReferenceError
        When resolving a reference's key type loops back on itself.
    """
    try:
        definitions = parse_entities(entities)
        model = _ModelBuilder(definitions).build()
    except ValidationError as exc:
        raise StructuralError(f"Invalid schema: {exc}") from exc

    logger.debug("Built model %s with %d table(s)", model.hash[:8], len(model.tables))
    return model


build_model = entities_to_model
