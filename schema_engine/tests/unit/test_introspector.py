"""Unit tests for schema_engine.builder.introspector."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from schema_engine.builder.introspector import catalog_type, model_from_catalog, parse_catalog_default
from schema_engine.builder.model_builder import entities_to_model
from schema_engine.models.schema import ColumnDefault


def _column(table: str, name: str, data_type: str, nullable: bool = True, **extra: Any) -> dict[str, Any]:
    return {
        "table_name": table,
        "column_name": name,
        "data_type": data_type,
        "udt_name": extra.pop("udt_name", ""),
        "is_nullable": "YES" if nullable else "NO",
        "column_default": extra.pop("default", None),
        **extra,
    }


def _user_catalog() -> tuple[list[dict], list[dict], list[dict]]:
    columns = [
        _column("user", "id", "uuid", nullable=False, default="gen_random_uuid()"),
        _column("user", "email", "character varying", nullable=False, character_maximum_length=255),
        _column("user", "name", "character varying", character_maximum_length=100),
    ]
    indexes = [
        {"table_name": "user", "index_name": "user_pkey", "column_name": "id", "is_unique": True, "is_primary": True},
        {
            "table_name": "user",
            "index_name": "user_email_key",
            "column_name": "email",
            "is_unique": True,
            "is_primary": False,
        },
    ]
    return columns, indexes, []


# ---------------------------------------------------------------------------
# catalog_type
# ---------------------------------------------------------------------------


class TestCatalogType:
    def test_plain_type(self):
        assert catalog_type({"data_type": "integer"}) == "INTEGER"

    def test_varchar_length(self):
        row = {"data_type": "character varying", "character_maximum_length": 64}
        assert catalog_type(row) == "VARCHAR(64)"

    def test_unbounded_varchar(self):
        assert catalog_type({"data_type": "character varying"}) == "VARCHAR"

    def test_numeric_precision_and_scale(self):
        row = {"data_type": "numeric", "numeric_precision": 10, "numeric_scale": 2}
        assert catalog_type(row) == "DECIMAL(10, 2)"

    def test_array_uses_udt_name(self):
        assert catalog_type({"data_type": "ARRAY", "udt_name": "_text"}) == "TEXT[]"

    def test_user_defined_uses_udt_name(self):
        assert catalog_type({"data_type": "USER-DEFINED", "udt_name": "mood"}) == "MOOD"

    def test_timestamp_with_time_zone(self):
        assert catalog_type({"data_type": "timestamp with time zone"}) == "TIMESTAMP WITH TIME ZONE"


# ---------------------------------------------------------------------------
# parse_catalog_default
# ---------------------------------------------------------------------------


class TestParseCatalogDefault:
    def test_none(self):
        assert parse_catalog_default(None) == (None, False)

    def test_sequence_marks_generated(self):
        assert parse_catalog_default("nextval('user_id_seq'::regclass)") == (None, True)

    def test_cast_string_literal(self):
        default, generated = parse_catalog_default("'active'::character varying")
        assert default == ColumnDefault.literal("active")
        assert generated is False

    def test_escaped_quote(self):
        default, _ = parse_catalog_default("'it''s'::text")
        assert default.value == "it's"

    def test_integer(self):
        assert parse_catalog_default("0")[0] == ColumnDefault.literal(0)

    def test_float(self):
        assert parse_catalog_default("1.5")[0] == ColumnDefault.literal(1.5)

    def test_boolean(self):
        assert parse_catalog_default("true")[0] == ColumnDefault.literal(True)

    def test_null_cast_is_no_default(self):
        assert parse_catalog_default("NULL::character varying") == (None, False)

    @pytest.mark.parametrize(
        ("raw", "tag"),
        [
            ("now()", "now"),
            ("CURRENT_TIMESTAMP", "now"),
            ("gen_random_uuid()", "gen_uuid"),
            ("uuid_generate_v4()", "gen_uuid"),
        ],
    )
    def test_expressions(self, raw: str, tag: str):
        default, generated = parse_catalog_default(raw)
        assert default == ColumnDefault.expression(tag)
        assert generated is False


# ---------------------------------------------------------------------------
# model_from_catalog
# ---------------------------------------------------------------------------


class TestModelFromCatalog:
    def test_matches_entity_built_model(self, user_entities: dict[str, Any]):
        columns, indexes, fks = _user_catalog()
        live = model_from_catalog(columns, indexes, fks)
        assert live.hash == entities_to_model(user_entities).hash

    def test_primary_index_not_emitted(self):
        columns, indexes, _ = _user_catalog()
        table = model_from_catalog(columns, indexes).tables["user"]
        assert table.primary_key == ["id"]
        assert [i.name for i in table.indexes] == ["user_email_key"]

    def test_index_columns_list(self):
        columns = [_column("t", "a", "integer"), _column("t", "b", "integer")]
        indexes = [{"table_name": "t", "index_name": "t_a_b_idx", "columns": ["a", "b"], "is_unique": "f"}]
        index = model_from_catalog(columns, indexes).tables["t"].get_index("t_a_b_idx")
        assert index.columns == ["a", "b"]
        assert index.unique is False

    def test_foreign_keys_grouped_by_constraint(self):
        columns = [
            _column("parent", "a", "integer", nullable=False),
            _column("parent", "b", "integer", nullable=False),
            _column("child", "pa", "integer"),
            _column("child", "pb", "integer"),
        ]
        fks = [
            {
                "table_name": "child",
                "constraint_name": "fk_child_pa_pb",
                "column_name": column,
                "foreign_table_name": "parent",
                "foreign_column_name": target,
                "delete_rule": "CASCADE",
            }
            for column, target in (("pa", "a"), ("pb", "b"))
        ]
        fk = model_from_catalog(columns, foreign_keys=fks).tables["child"].foreign_keys[0]
        assert fk.columns == ["pa", "pb"]
        assert fk.references.table == "parent"
        assert fk.references.columns == ["a", "b"]
        assert fk.on_delete == "CASCADE"

    def test_no_action_delete_rule_dropped(self):
        columns = [_column("parent", "id", "integer"), _column("child", "pid", "integer")]
        fks = [
            {
                "table_name": "child",
                "constraint_name": "fk_child_pid",
                "column_name": "pid",
                "foreign_table_name": "parent",
                "foreign_column_name": "id",
                "delete_rule": "NO ACTION",
            }
        ]
        assert model_from_catalog(columns, foreign_keys=fks).tables["child"].foreign_keys[0].on_delete is None

    def test_serial_column_is_generated(self):
        columns = [_column("t", "id", "integer", nullable=False, default="nextval('t_id_seq'::regclass)")]
        column = model_from_catalog(columns).tables["t"].columns["id"]
        assert column.generated is True
        assert column.default is None

    def test_orphaned_index_logged_and_dropped(self, caplog: pytest.LogCaptureFixture):
        indexes = [{"table_name": "ghost", "index_name": "ghost_idx", "column_name": "x"}]
        with caplog.at_level(logging.WARNING, logger="schema_engine.builder.introspector"):
            model = model_from_catalog([_column("t", "a", "integer")], indexes)
        assert "ghost" not in model.tables
        assert "ghost" in caplog.text

    def test_row_order_does_not_matter(self):
        columns, indexes, fks = _user_catalog()
        forward = model_from_catalog(columns, indexes, fks)
        backward = model_from_catalog(list(reversed(columns)), list(reversed(indexes)), fks)
        assert forward.hash == backward.hash
