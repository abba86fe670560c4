"""Unit tests for schema_engine.diff.apply."""

from __future__ import annotations

import pytest

from schema_engine.diff.apply import WorkingSchema, apply_steps, replay_transitions
from schema_engine.errors import StructuralError
from schema_engine.models.schema import Column, ColumnDefault, ForeignKey, ForeignKeyReference, Index, Model, Table
from schema_engine.models.steps import (
    AddColumnStep,
    AddForeignKeyStep,
    AddIndexStep,
    AddTableStep,
    ColumnChanges,
    DropColumnStep,
    DropForeignKeyStep,
    DropIndexStep,
    DropTableStep,
    ModifyColumnStep,
    RenameColumnStep,
)
from schema_engine.store.records import create_transition


def _pk(name: str = "id") -> Column:
    return Column(name=name, type="INTEGER", primary=True)


def _fk() -> ForeignKey:
    return ForeignKey(
        name="fk_post_author_id",
        columns=["author_id"],
        references=ForeignKeyReference(table="user", columns=["id"]),
    )


def _blog() -> Model:
    return apply_steps(
        Model.empty(),
        [
            AddTableStep(table="user", columns=[_pk(), Column(name="email", type="TEXT")]),
            AddTableStep(table="post", columns=[_pk(), Column(name="author_id", type="INTEGER")]),
            AddIndexStep(table="user", index=Index(name="user_email_key", columns=["email"], unique=True)),
            AddForeignKeyStep(table="post", foreign_key=_fk()),
        ],
    )


# ---------------------------------------------------------------------------
# Successful application
# ---------------------------------------------------------------------------


class TestApplySteps:
    def test_no_steps_returns_same_model(self):
        model = _blog()
        assert apply_steps(model, []).hash == model.hash

    def test_builds_tables(self):
        model = _blog()
        assert model.table_names == ["post", "user"]
        assert model.tables["post"].get_foreign_key("fk_post_author_id") == _fk()
        assert model.tables["user"].get_index("user_email_key").unique is True

    def test_input_model_untouched(self):
        model = _blog()
        original = model.hash
        apply_steps(model, [AddColumnStep(table="user", column=Column(name="bio", type="TEXT"))])
        assert model.hash == original
        assert "bio" not in model.tables["user"].columns

    def test_rename_carries_dependants(self):
        model = apply_steps(_blog(), [RenameColumnStep(table="user", column="id", new_name="user_id")])
        user = model.tables["user"]
        assert "user_id" in user.columns
        assert "id" not in user.columns
        assert user.columns["user_id"].name == "user_id"
        assert model.tables["post"].foreign_keys[0].references.columns == ["user_id"]

    def test_rename_updates_index_columns(self):
        model = apply_steps(_blog(), [RenameColumnStep(table="user", column="email", new_name="mail")])
        assert model.tables["user"].get_index("user_email_key").columns == ["mail"]

    def test_modify_sets_only_given_attributes(self):
        step = ModifyColumnStep(table="user", column="email", changes=ColumnChanges(nullable=False))
        column = apply_steps(_blog(), [step]).tables["user"].columns["email"]
        assert column.nullable is False
        assert column.type == "TEXT"

    def test_modify_default_then_drop_it(self):
        set_default = ModifyColumnStep(
            table="user", column="email", changes=ColumnChanges(default=ColumnDefault.literal("n/a"))
        )
        model = apply_steps(_blog(), [set_default])
        assert model.tables["user"].columns["email"].default == ColumnDefault.literal("n/a")

        drop_default = ModifyColumnStep(table="user", column="email", changes=ColumnChanges(drop_default=True))
        assert apply_steps(model, [drop_default]).tables["user"].columns["email"].default is None

    def test_modify_to_primary_forces_not_null(self):
        step = ModifyColumnStep(table="user", column="email", changes=ColumnChanges(primary=True))
        column = apply_steps(_blog(), [step]).tables["user"].columns["email"]
        assert column.primary is True
        assert column.nullable is False

    def test_drop_in_dependency_order(self):
        model = apply_steps(
            _blog(),
            [
                DropForeignKeyStep(table="post", foreign_key="fk_post_author_id"),
                DropIndexStep(table="user", index="user_email_key"),
                DropColumnStep(table="user", column="email"),
                DropTableStep(table="user"),
            ],
        )
        assert model.table_names == ["post"]


# ---------------------------------------------------------------------------
# Rejected steps
# ---------------------------------------------------------------------------


class TestApplyErrors:
    def test_unknown_table(self):
        with pytest.raises(StructuralError, match=r"Step 0 \(add_column\) failed"):
            apply_steps(Model.empty(), [AddColumnStep(table="ghost", column=Column(name="a", type="TEXT"))])

    def test_error_reports_step_position(self):
        steps = [
            AddColumnStep(table="user", column=Column(name="bio", type="TEXT")),
            AddColumnStep(table="user", column=Column(name="bio", type="TEXT")),
        ]
        with pytest.raises(StructuralError, match=r"Step 1 \(add_column\) failed.*already exists"):
            apply_steps(_blog(), steps)

    def test_add_existing_table(self):
        with pytest.raises(StructuralError, match="table already exists"):
            apply_steps(_blog(), [AddTableStep(table="user", columns=[_pk()])])

    def test_add_table_duplicate_columns(self):
        with pytest.raises(StructuralError, match="duplicate column names"):
            apply_steps(Model.empty(), [AddTableStep(table="t", columns=[_pk(), _pk()])])

    def test_drop_referenced_table(self):
        with pytest.raises(StructuralError, match="still referenced by post.fk_post_author_id"):
            apply_steps(_blog(), [DropTableStep(table="user")])

    def test_drop_indexed_column(self):
        with pytest.raises(StructuralError, match="still used by user_email_key"):
            apply_steps(_blog(), [DropColumnStep(table="user", column="email")])

    def test_drop_referenced_column(self):
        with pytest.raises(StructuralError, match="still used by post.fk_post_author_id"):
            apply_steps(_blog(), [DropColumnStep(table="user", column="id")])

    def test_drop_foreign_key_column(self):
        with pytest.raises(StructuralError, match="still used by fk_post_author_id"):
            apply_steps(_blog(), [DropColumnStep(table="post", column="author_id")])

    def test_rename_onto_existing_column(self):
        with pytest.raises(StructuralError, match="target name already exists"):
            apply_steps(_blog(), [RenameColumnStep(table="user", column="email", new_name="id")])

    def test_index_on_unknown_column(self):
        step = AddIndexStep(table="user", index=Index(name="bad_idx", columns=["nope"]))
        with pytest.raises(StructuralError, match="unknown column"):
            apply_steps(_blog(), [step])

    def test_foreign_key_to_missing_table(self):
        fk = ForeignKey(
            name="fk_post_editor",
            columns=["author_id"],
            references=ForeignKeyReference(table="editor", columns=["id"]),
        )
        with pytest.raises(StructuralError, match="referenced table 'editor' does not exist"):
            apply_steps(_blog(), [AddForeignKeyStep(table="post", foreign_key=fk)])

    def test_drop_missing_index(self):
        with pytest.raises(StructuralError, match="does not exist"):
            apply_steps(_blog(), [DropIndexStep(table="user", index="nope")])

    def test_failed_step_leaves_working_schema_untouched(self):
        schema = WorkingSchema(_blog())
        with pytest.raises(StructuralError):
            schema.apply(DropTableStep(table="user"))
        assert schema.to_model().hash == _blog().hash


# ---------------------------------------------------------------------------
# replay_transitions
# ---------------------------------------------------------------------------


class TestReplayTransitions:
    def test_replay_from_empty(self):
        first = create_transition("", "a" * 64, [AddTableStep(table="t", columns=[_pk()])])
        second = create_transition(
            "a" * 64, "b" * 64, [AddColumnStep(table="t", column=Column(name="label", type="TEXT"))]
        )
        model = replay_transitions([first, second])
        assert Table(name="t", columns={"id": _pk(), "label": Column(name="label", type="TEXT")}) == model.tables["t"]

    def test_replay_nothing(self):
        assert replay_transitions([]).hash == Model.empty().hash
