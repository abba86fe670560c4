"""Unit tests for schema_engine.diff.step_generator."""

from __future__ import annotations

import json
from typing import Any

from schema_engine.builder.model_builder import entities_to_model
from schema_engine.diff.apply import apply_steps
from schema_engine.diff.schema_diff import compute_diff
from schema_engine.diff.step_generator import diff_to_steps, modification_changes
from schema_engine.hashing import canonical_json
from schema_engine.models.schema import Column, ColumnDefault, ForeignKey, ForeignKeyReference, Index, Model, Table
from schema_engine.models.steps import AddTableStep, ModifyColumnStep, StepType


def _table(name: str, *columns: Column, indexes=(), foreign_keys=()) -> Table:
    return Table(
        name=name,
        columns={c.name: c for c in columns},
        indexes=list(indexes),
        foreign_keys=list(foreign_keys),
    )


def _model(*tables: Table) -> Model:
    return Model(tables={t.name: t for t in tables})


def _steps(before: Model, after: Model, renames=None):
    return diff_to_steps(compute_diff(before, after, renames), before, after)


def _kinds(steps) -> list[tuple[str, str]]:
    return [(s.type, s.table) for s in steps]


def _blog(id_type: str = "INTEGER") -> Model:
    ref = ForeignKeyReference(table="user", columns=["id"])
    return _model(
        _table(
            "user",
            Column(name="id", type=id_type, primary=True),
            Column(name="email", type="VARCHAR(255)", nullable=False),
            indexes=[Index(name="user_email_key", columns=["email"], unique=True)],
        ),
        _table(
            "post",
            Column(name="id", type="INTEGER", primary=True),
            Column(name="author_id", type=id_type, nullable=False),
            foreign_keys=[ForeignKey(name="fk_post_author_id", columns=["author_id"], references=ref)],
        ),
    )


# ---------------------------------------------------------------------------
# Basic generation
# ---------------------------------------------------------------------------


class TestDiffToSteps:
    def test_empty_diff_yields_no_steps(self):
        model = _blog()
        assert _steps(model, model) == []

    def test_added_field_yields_single_add_column(self):
        before = entities_to_model({"User": {"id": "uuid!", "name": "string!"}})
        after = entities_to_model({"User": {"id": "uuid!", "name": "string!", "email": "string"}})
        assert before.hash != after.hash

        diff = compute_diff(before, after)
        assert diff.get_table_diff("user").added_columns == ["email"]

        steps = diff_to_steps(diff, before, after)
        assert len(steps) == 1
        assert steps[0].type == StepType.ADD_COLUMN.value
        assert steps[0].table == "user"
        assert steps[0].column.name == "email"
        assert steps[0].column.type == "VARCHAR(255)"

    def test_new_table_before_its_indexes_and_foreign_keys(self):
        steps = _steps(Model.empty(), _blog())
        assert _kinds(steps) == [
            ("add_table", "post"),
            ("add_table", "user"),
            ("add_index", "user"),
            ("add_foreign_key", "post"),
        ]

    def test_add_table_lists_primary_key_first(self):
        table = _table(
            "t",
            Column(name="alpha", type="TEXT"),
            Column(name="zeta", type="INTEGER", primary=True),
            Column(name="beta", type="TEXT"),
        )
        steps = _steps(Model.empty(), _model(table))
        add = steps[0]
        assert isinstance(add, AddTableStep)
        assert [c.name for c in add.columns] == ["zeta", "alpha", "beta"]
        assert add.primary_key == ["zeta"]

    def test_foreign_keys_dropped_before_tables(self):
        steps = _steps(_blog(), Model.empty())
        assert _kinds(steps) == [
            ("drop_foreign_key", "post"),
            ("drop_table", "post"),
            ("drop_table", "user"),
        ]

    def test_drop_index_before_drop_column(self):
        before = _blog()
        user = before.tables["user"]
        after = _model(
            _table("user", user.columns["id"]),
            before.tables["post"],
        )
        assert _kinds(_steps(before, after)) == [
            ("drop_index", "user"),
            ("drop_column", "user"),
        ]

    def test_phase_order(self):
        before = _model(
            _table(
                "a",
                Column(name="id", type="INTEGER", primary=True),
                Column(name="old", type="TEXT"),
                Column(name="size", type="INTEGER"),
            ),
            _table("gone", Column(name="id", type="INTEGER", primary=True)),
        )
        after = _model(
            _table(
                "a",
                Column(name="id", type="INTEGER", primary=True),
                Column(name="size", type="BIGINT"),
                Column(name="new", type="TEXT"),
                indexes=[Index(name="a_new_idx", columns=["new"])],
            ),
            _table("fresh", Column(name="id", type="INTEGER", primary=True)),
        )
        kinds = [s.type for s in _steps(before, after)]
        assert kinds == [
            "drop_column",
            "drop_table",
            "add_table",
            "add_column",
            "modify_column",
            "add_index",
        ]

    def test_rename_step_emitted(self):
        before = _model(_table("user", Column(name="id", type="INTEGER", primary=True), Column(name="name", type="TEXT")))
        after = _model(
            _table("user", Column(name="id", type="INTEGER", primary=True), Column(name="full_name", type="TEXT"))
        )
        steps = _steps(before, after, {("user", "name"): "full_name"})
        assert len(steps) == 1
        assert steps[0].type == "rename_column"
        assert (steps[0].column, steps[0].new_name) == ("name", "full_name")

    def test_deterministic_output(self, blog_entities: dict[str, Any], blog_entities_v3: dict[str, Any]):
        before = entities_to_model(blog_entities)
        after = entities_to_model(blog_entities_v3)
        first = json.dumps([s.model_dump(mode="json") for s in _steps(before, after)], sort_keys=True)
        second = json.dumps([s.model_dump(mode="json") for s in _steps(before, after)], sort_keys=True)
        assert first == second


# ---------------------------------------------------------------------------
# Column modifications
# ---------------------------------------------------------------------------


class TestModifications:
    def test_only_changed_attributes_are_set(self):
        before = _model(_table("t", Column(name="id", type="INTEGER", primary=True), Column(name="n", type="INTEGER")))
        after = _model(
            _table("t", Column(name="id", type="INTEGER", primary=True), Column(name="n", type="INTEGER", nullable=False))
        )
        (step,) = _steps(before, after)
        assert isinstance(step, ModifyColumnStep)
        assert step.changes.nullable is False
        assert step.changes.type is None
        assert step.changes.default is None
        assert step.changes.drop_default is False

    def test_removed_default_becomes_drop_default(self):
        before = _model(
            _table(
                "t",
                Column(name="id", type="INTEGER", primary=True),
                Column(name="n", type="INTEGER", default=ColumnDefault.literal(0)),
            )
        )
        after = _model(_table("t", Column(name="id", type="INTEGER", primary=True), Column(name="n", type="INTEGER")))
        modification = compute_diff(before, after).get_table_diff("t").get_modification("n")
        changes = modification_changes(modification)
        assert changes.drop_default is True
        assert changes.default is None

    def test_retyped_column_detaches_its_index(self):
        before = _blog()
        user = before.tables["user"]
        after = _model(
            _table(
                "user",
                user.columns["id"],
                Column(name="email", type="VARCHAR(320)", nullable=False),
                indexes=user.indexes,
            ),
            before.tables["post"],
        )
        assert _kinds(_steps(before, after)) == [
            ("drop_index", "user"),
            ("modify_column", "user"),
            ("add_index", "user"),
        ]

    def test_retyped_referenced_key_detaches_foreign_key(self):
        assert _kinds(_steps(_blog("INTEGER"), _blog("BIGINT"))) == [
            ("drop_foreign_key", "post"),
            ("modify_column", "post"),
            ("modify_column", "user"),
            ("add_foreign_key", "post"),
        ]


# ---------------------------------------------------------------------------
# Round trip through apply_steps
# ---------------------------------------------------------------------------


class TestRoundTrip:
    def _assert_round_trip(self, before: Model, after: Model, renames=None) -> None:
        result = apply_steps(before, _steps(before, after, renames))
        assert result.hash == after.hash
        assert canonical_json(result) == canonical_json(after)

    def test_from_empty(self):
        self._assert_round_trip(Model.empty(), _blog())

    def test_to_empty(self):
        self._assert_round_trip(_blog(), Model.empty())

    def test_type_change_on_both_sides_of_a_foreign_key(self):
        self._assert_round_trip(_blog("INTEGER"), _blog("BIGINT"))

    def test_entity_evolution(self, blog_entities: dict[str, Any], blog_entities_v3: dict[str, Any]):
        self._assert_round_trip(entities_to_model(blog_entities), entities_to_model(blog_entities_v3))

    def test_entity_evolution_backwards(self, blog_entities: dict[str, Any], blog_entities_v3: dict[str, Any]):
        self._assert_round_trip(entities_to_model(blog_entities_v3), entities_to_model(blog_entities))

    def test_rename_with_index(self):
        before = _model(
            _table(
                "user",
                Column(name="id", type="INTEGER", primary=True),
                Column(name="name", type="TEXT"),
                indexes=[Index(name="user_name_idx", columns=["name"])],
            )
        )
        after = _model(
            _table(
                "user",
                Column(name="id", type="INTEGER", primary=True),
                Column(name="full_name", type="TEXT", nullable=False),
                indexes=[Index(name="user_name_idx", columns=["full_name"])],
            )
        )
        self._assert_round_trip(before, after, {("user", "name"): "full_name"})

    def test_primary_key_change(self):
        before = _model(_table("t", Column(name="id", type="INTEGER", primary=True), Column(name="code", type="TEXT")))
        after = _model(
            _table("t", Column(name="id", type="INTEGER"), Column(name="code", type="TEXT", primary=True))
        )
        self._assert_round_trip(before, after)
