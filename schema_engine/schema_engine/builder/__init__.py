"""Entity parsing and canonical model construction."""

from schema_engine.builder.entity_parser import parse_entities, parse_entity, snake_case
from schema_engine.builder.introspector import model_from_catalog
from schema_engine.builder.model_builder import build_model, entities_to_model, foreign_key_name, index_name
from schema_engine.builder.type_mapper import PRIMITIVE_TYPES, map_field_type, normalize_sql_type
from schema_engine.builder.type_parser import TypeExpression, parse_default, parse_type_expression

__all__ = [
    # Model construction
    "build_model",
    "entities_to_model",
    "model_from_catalog",
    # Entity parsing
    "parse_entities",
    "parse_entity",
    "snake_case",
    "TypeExpression",
    "parse_default",
    "parse_type_expression",
    # Types and naming
    "PRIMITIVE_TYPES",
    "map_field_type",
    "normalize_sql_type",
    "foreign_key_name",
    "index_name",
]
