"""Unit tests for schema_engine.diff.schema_diff."""

from __future__ import annotations

import pytest

from schema_engine.diff.schema_diff import column_changes, compute_diff
from schema_engine.errors import StructuralError
from schema_engine.models.schema import Column, ColumnDefault, ForeignKey, ForeignKeyReference, Index, Model, Table


def _table(name: str, *columns: Column, indexes=(), foreign_keys=()) -> Table:
    return Table(
        name=name,
        columns={c.name: c for c in columns},
        indexes=list(indexes),
        foreign_keys=list(foreign_keys),
    )


def _model(*tables: Table) -> Model:
    return Model(tables={t.name: t for t in tables})


def _id() -> Column:
    return Column(name="id", type="INTEGER", primary=True)


# ---------------------------------------------------------------------------
# column_changes
# ---------------------------------------------------------------------------


class TestColumnChanges:
    def test_identical_columns(self):
        col = Column(name="a", type="TEXT")
        assert column_changes(col, col) == []

    def test_reports_each_changed_field_in_order(self):
        before = Column(name="a", type="VARCHAR(10)", nullable=True)
        after = Column(name="a", type="VARCHAR(20)", nullable=False, default=ColumnDefault.literal("x"))
        changes = column_changes(before, after)
        assert [c.field for c in changes] == ["type", "nullable", "default"]
        assert changes[0].old == "VARCHAR(10)"
        assert changes[0].new == "VARCHAR(20)"

    def test_generated_flag_compared(self):
        before = Column(name="a", type="INTEGER")
        after = Column(name="a", type="INTEGER", generated=True)
        assert [c.field for c in column_changes(before, after)] == ["generated"]


# ---------------------------------------------------------------------------
# compute_diff
# ---------------------------------------------------------------------------


class TestComputeDiff:
    def test_identical_models_are_empty(self):
        model = _model(_table("user", _id(), Column(name="email", type="TEXT")))
        diff = compute_diff(model, model)
        assert diff.is_empty
        assert diff.from_hash == diff.to_hash == model.hash

    def test_empty_models(self):
        assert compute_diff(Model.empty(), Model.empty()).is_empty

    def test_added_and_removed_tables_sorted(self):
        before = _model(_table("b", _id()), _table("a", _id()), _table("keep", _id()))
        after = _model(_table("keep", _id()), _table("z", _id()), _table("c", _id()))
        diff = compute_diff(before, after)
        assert diff.added_tables == ["c", "z"]
        assert diff.removed_tables == ["a", "b"]
        assert diff.modified_tables == []

    def test_added_column(self):
        before = _model(_table("user", _id()))
        after = _model(_table("user", _id(), Column(name="email", type="TEXT")))
        diff = compute_diff(before, after)
        table_diff = diff.get_table_diff("user")
        assert table_diff.added_columns == ["email"]
        assert table_diff.removed_columns == []

    def test_removed_column(self):
        before = _model(_table("user", _id(), Column(name="email", type="TEXT")))
        after = _model(_table("user", _id()))
        assert compute_diff(before, after).get_table_diff("user").removed_columns == ["email"]

    def test_modified_column(self):
        before = _model(_table("user", _id(), Column(name="age", type="INTEGER")))
        after = _model(_table("user", _id(), Column(name="age", type="BIGINT")))
        modification = compute_diff(before, after).get_table_diff("user").get_modification("age")
        assert modification is not None
        assert modification.type_changed
        assert modification.before.type == "INTEGER"
        assert modification.after.type == "BIGINT"

    def test_unchanged_tables_omitted(self):
        before = _model(_table("a", _id()), _table("b", _id()))
        after = _model(_table("a", _id()), _table("b", _id(), Column(name="x", type="TEXT")))
        assert [t.table for t in compute_diff(before, after).modified_tables] == ["b"]

    def test_added_and_removed_indexes(self):
        email = Column(name="email", type="TEXT")
        before = _model(_table("user", _id(), email, indexes=[Index(name="old_idx", columns=["email"])]))
        after = _model(_table("user", _id(), email, indexes=[Index(name="new_idx", columns=["email"])]))
        table_diff = compute_diff(before, after).get_table_diff("user")
        assert table_diff.added_indexes == ["new_idx"]
        assert table_diff.removed_indexes == ["old_idx"]

    def test_redefined_index_is_removed_and_added(self):
        email = Column(name="email", type="TEXT")
        before = _model(_table("user", _id(), email, indexes=[Index(name="email_idx", columns=["email"])]))
        after = _model(_table("user", _id(), email, indexes=[Index(name="email_idx", columns=["email"], unique=True)]))
        table_diff = compute_diff(before, after).get_table_diff("user")
        assert table_diff.added_indexes == ["email_idx"]
        assert table_diff.removed_indexes == ["email_idx"]

    def test_foreign_key_changes(self):
        ref = ForeignKeyReference(table="user", columns=["id"])
        fk = ForeignKey(name="fk_post_author", columns=["author_id"], references=ref)
        author = Column(name="author_id", type="INTEGER")
        before = _model(_table("user", _id()), _table("post", _id(), author))
        after = _model(_table("user", _id()), _table("post", _id(), author, foreign_keys=[fk]))
        table_diff = compute_diff(before, after).get_table_diff("post")
        assert table_diff.added_foreign_keys == ["fk_post_author"]
        assert table_diff.removed_foreign_keys == []

    def test_rename_is_not_inferred(self):
        before = _model(_table("user", _id(), Column(name="name", type="TEXT")))
        after = _model(_table("user", _id(), Column(name="full_name", type="TEXT")))
        table_diff = compute_diff(before, after).get_table_diff("user")
        assert table_diff.added_columns == ["full_name"]
        assert table_diff.removed_columns == ["name"]
        assert table_diff.renamed_columns == []

    def test_declaration_order_is_irrelevant(self):
        a = Column(name="a", type="TEXT")
        b = Column(name="b", type="TEXT")
        before = _model(_table("t", _id()))
        first = compute_diff(before, _model(_table("t", _id(), a, b)))
        second = compute_diff(before, _model(_table("t", b, a, _id())))
        assert first.model_dump_json() == second.model_dump_json()


# ---------------------------------------------------------------------------
# Out-of-band renames
# ---------------------------------------------------------------------------


class TestRenames:
    def test_supplied_rename(self):
        before = _model(_table("user", _id(), Column(name="name", type="TEXT")))
        after = _model(_table("user", _id(), Column(name="full_name", type="TEXT")))
        table_diff = compute_diff(before, after, {("user", "name"): "full_name"}).get_table_diff("user")
        assert [(r.old_name, r.new_name) for r in table_diff.renamed_columns] == [("name", "full_name")]
        assert table_diff.added_columns == []
        assert table_diff.removed_columns == []
        assert table_diff.modified_columns == []

    def test_rename_with_modification(self):
        before = _model(_table("user", _id(), Column(name="name", type="VARCHAR(50)")))
        after = _model(_table("user", _id(), Column(name="full_name", type="VARCHAR(100)")))
        table_diff = compute_diff(before, after, {("user", "name"): "full_name"}).get_table_diff("user")
        modification = table_diff.get_modification("full_name")
        assert modification.before.name == "name"
        assert modification.type_changed

    def test_rename_of_unknown_column(self):
        model = _model(_table("user", _id()))
        target = _model(_table("user", _id(), Column(name="x", type="TEXT")))
        with pytest.raises(StructuralError, match="Cannot rename unknown column"):
            compute_diff(model, target, {("user", "missing"): "x"})

    def test_rename_target_must_exist(self):
        before = _model(_table("user", _id(), Column(name="name", type="TEXT")))
        after = _model(_table("user", _id()))
        with pytest.raises(StructuralError, match="does not exist in the target"):
            compute_diff(before, after, {("user", "name"): "full_name"})

    def test_rename_on_added_table(self):
        with pytest.raises(StructuralError, match="present in both models"):
            compute_diff(Model.empty(), _model(_table("user", _id())), {("user", "a"): "b"})
