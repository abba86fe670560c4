"""Parse loosely-typed entity mappings into :class:`EntityDefinition` objects.

Accepted input::

    {
        "User": {                                   # short form
            "id": "uuid! primary = gen_uuid",
            "email": "email! unique",
            "posts": "Post[]",
        },
        "Post": {                                   # full form
            "table": "posts",
            "fields": {
                "id": {"type": "uuid", "primary": True, "generated": True},
                "author": "User! cascade",
                "title": {"type": "string", "maxLength": 200, "required": True},
            },
            "indexes": [{"fields": ["author", "title"]}],
        },
    }

Every field becomes exactly one of :class:`PrimitiveKind`,
:class:`SchemaReferenceKind` or :class:`SchemaArrayKind`.  Whether a
capitalized name refers to a *defined* entity is checked here as well, so the
builder only sees resolvable references.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from schema_engine.builder.type_mapper import LENGTH_TYPES, PRECISION_TYPES, PRIMITIVE_TYPES, RANGE_TYPES
from schema_engine.builder.type_parser import (
    TypeExpression,
    parse_default,
    parse_enum_params,
    parse_length_params,
    parse_precision_params,
    parse_type_expression,
)
from schema_engine.errors import StructuralError
from schema_engine.models.entity import (
    EntityDefinition,
    EntitySpec,
    FieldSpec,
    ParsedField,
    PrimitiveKind,
    SchemaArrayKind,
    SchemaReferenceKind,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY_RE = re.compile(r"(.)([A-Z][a-z]+)")
_LOWER_UPPER_RE = re.compile(r"([a-z0-9])([A-Z])")


def snake_case(name: str) -> str:
    """``BlogPost`` -> ``blog_post``; ``HTTPRequest`` -> ``http_request``."""
    partial = _CAMEL_BOUNDARY_RE.sub(r"\1_\2", name)
    return _LOWER_UPPER_RE.sub(r"\1_\2", partial).lower()


def _is_full_form(definition: Mapping[str, Any]) -> bool:
    return isinstance(definition.get("fields"), Mapping)


# ---------------------------------------------------------------------------
# Field kinds
# ---------------------------------------------------------------------------


def _resolve_kind(
    expr: TypeExpression,
    spec: FieldSpec | None,
    entity_names: set[str],
    *,
    entity: str,
    field: str,
) -> PrimitiveKind | SchemaReferenceKind | SchemaArrayKind:
    """Classify a parsed type expression, folding in dict-form overrides."""
    if expr.is_capitalized:
        if expr.base not in entity_names:
            raise StructuralError(f"Undefined related entity {expr.base!r}", entity=entity, field=field)
        if expr.params is not None:
            raise StructuralError("Entity references take no parameters", entity=entity, field=field)
        if expr.array:
            return SchemaArrayKind(target=expr.base)
        return SchemaReferenceKind(target=expr.base)

    name = expr.base.lower()
    if name not in PRIMITIVE_TYPES:
        raise StructuralError(f"Unknown field type {expr.base!r}", entity=entity, field=field)

    length: int | None = None
    min_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    enum_values: list[str] = []

    if expr.params is not None:
        if name in LENGTH_TYPES or name in RANGE_TYPES:
            min_length, length = parse_length_params(expr.params)
            if name in RANGE_TYPES:
                # Integer ranges constrain values, not storage.
                min_length = length = None
        elif name in PRECISION_TYPES:
            precision, scale = parse_precision_params(expr.params)
        elif name == "enum":
            enum_values = parse_enum_params(expr.params)
        else:
            raise StructuralError(f"Type {name!r} takes no parameters", entity=entity, field=field)

    db_type: str | None = None
    if spec is not None:
        length = spec.length or spec.max_length or length
        min_length = spec.min_length if spec.min_length is not None else min_length
        precision = spec.precision or precision
        scale = spec.scale if spec.scale is not None else scale
        if spec.enum:
            enum_values = [str(v) for v in spec.enum]
        db_type = spec.db_type

    return PrimitiveKind(
        name=name,
        array=expr.array,
        length=length,
        min_length=min_length,
        precision=precision,
        scale=scale,
        enum_values=enum_values,
        db_type=db_type,
    )


def _parse_shorthand_field(name: str, text: str, entity_names: set[str], entity: str) -> ParsedField:
    try:
        expr = parse_type_expression(text)
    except StructuralError as exc:
        raise StructuralError(str(exc), entity=entity, field=name) from exc

    kind = _resolve_kind(expr, None, entity_names, entity=entity, field=name)
    return ParsedField(
        name=name,
        kind=kind,
        column=name,
        nullable=expr.nullable is not False,
        primary="primary" in expr.modifiers,
        generated="generated" in expr.modifiers,
        unique="unique" in expr.modifiers,
        indexed="indexed" in expr.modifiers,
        default=expr.default,
        on_delete="CASCADE" if "cascade" in expr.modifiers else None,
    )


def _parse_dict_field(name: str, raw: Mapping[str, Any], entity_names: set[str], entity: str) -> ParsedField:
    try:
        spec = FieldSpec.model_validate(dict(raw))
    except ValidationError as exc:
        raise StructuralError(f"Invalid field definition: {exc}", entity=entity, field=name) from exc

    if not spec.type and not spec.db_type:
        raise StructuralError("Field has no type", entity=entity, field=name)

    try:
        expr = parse_type_expression(spec.type) if spec.type else TypeExpression(base="text")
    except StructuralError as exc:
        raise StructuralError(str(exc), entity=entity, field=name) from exc

    kind = _resolve_kind(expr, spec, entity_names, entity=entity, field=name)

    if spec.required:
        nullable = False
    elif spec.nullable is not None:
        nullable = spec.nullable
    else:
        nullable = expr.nullable is not False

    default = expr.default
    if "default" in spec.model_fields_set:
        try:
            default = parse_default(spec.default)
        except StructuralError as exc:
            raise StructuralError(str(exc), entity=entity, field=name) from exc

    on_delete = spec.on_delete.upper() if spec.on_delete else None
    if on_delete is None and "cascade" in expr.modifiers:
        on_delete = "CASCADE"

    return ParsedField(
        name=name,
        kind=kind,
        column=spec.db_column or name,
        explicit_column=spec.db_column is not None,
        nullable=nullable,
        primary=spec.primary or "primary" in expr.modifiers,
        generated=spec.generated or "generated" in expr.modifiers,
        unique=spec.unique or "unique" in expr.modifiers,
        indexed=spec.index or spec.indexed or "indexed" in expr.modifiers,
        default=default,
        on_delete=on_delete,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_entity(name: str, definition: Any, entity_names: set[str]) -> EntityDefinition:
    """Parse one entity definition.

    Raises
    ------
    StructuralError
        If the definition is not a mapping, has no fields, or any field is
        invalid.
    """
    if not isinstance(definition, Mapping):
        raise StructuralError("Entity definition must be a mapping", entity=name)

    if _is_full_form(definition):
        try:
            spec = EntitySpec.model_validate(dict(definition))
        except ValidationError as exc:
            raise StructuralError(f"Invalid entity definition: {exc}", entity=name) from exc
        raw_fields: Mapping[str, Any] = spec.fields
        table = spec.table or snake_case(name)
        indexes = spec.indexes
    else:
        raw_fields = definition
        table = snake_case(name)
        indexes = []

    if not raw_fields:
        raise StructuralError("Entity has no fields", entity=name)

    fields: list[ParsedField] = []
    for field_name, raw in raw_fields.items():
        if not isinstance(field_name, str) or not field_name:
            raise StructuralError(f"Invalid field name {field_name!r}", entity=name)
        if isinstance(raw, str):
            fields.append(_parse_shorthand_field(field_name, raw, entity_names, name))
        elif isinstance(raw, Mapping):
            fields.append(_parse_dict_field(field_name, raw, entity_names, name))
        else:
            raise StructuralError(
                f"Field must be a string or mapping, got {type(raw).__name__}",
                entity=name,
                field=field_name,
            )

    return EntityDefinition(name=name, table=table, fields=fields, indexes=indexes)


def parse_entities(entities: Mapping[str, Any]) -> list[EntityDefinition]:
    """Parse every entity, sorted by entity name."""
    if not isinstance(entities, Mapping):
        raise StructuralError("Entities must be a mapping of entity name to definition")

    names = set()
    for name in entities:
        if not isinstance(name, str) or not name:
            raise StructuralError(f"Invalid entity name {name!r}")
        names.add(name)

    parsed = [parse_entity(name, entities[name], names) for name in sorted(names)]
    logger.debug("Parsed %d entity definitions", len(parsed))
    return parsed
