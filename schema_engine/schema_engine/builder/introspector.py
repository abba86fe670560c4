"""Build a :class:`Model` from live catalog rows.

This module does **not** query a database.  The caller runs the
``information_schema`` queries and passes the raw row dicts; the rows are
normalised into the same canonical :class:`Model` the entity builder produces,
so a live database and an entity file describing the same schema hash equal.

Expected row shapes (extra keys are ignored):

* columns -- ``table_name``, ``column_name``, ``data_type``, ``udt_name``,
  ``is_nullable`` (``"YES"``/``"NO"`` or bool), ``column_default``,
  ``character_maximum_length``, ``numeric_precision``, ``numeric_scale``.
* indexes -- ``table_name``, ``index_name``, ``column_name`` (one row per
  column, in index order) or ``columns`` (a list), ``is_unique``,
  ``is_primary``.
* foreign keys -- ``table_name``, ``constraint_name``, ``column_name``,
  ``foreign_table_name``, ``foreign_column_name``, ``delete_rule``; one row per
  column pair, in constraint order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from schema_engine.builder.type_mapper import normalize_sql_type
from schema_engine.models.schema import Column, ColumnDefault, ForeignKey, ForeignKeyReference, Index, Model, Table

logger = logging.getLogger(__name__)

_CAST_RE = re.compile(r"^\(?(?P<value>.*?)\)?::[\w\s\[\]\"]+$")
_CALL_RE = re.compile(r"^(?P<name>[A-Za-z_]\w*)\(\)$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")

# Catalog function names -> expression tags used by entity defaults.
_EXPRESSION_NAMES: dict[str, str] = {
    "now": "now",
    "current_timestamp": "now",
    "gen_random_uuid": "gen_uuid",
    "uuid_generate_v4": "gen_uuid",
    "current_date": "current_date",
    "random": "random",
}

_LENGTH_TYPES = {"character varying", "varchar", "character", "char", "bpchar"}
_PRECISION_TYPES = {"numeric", "decimal"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "TRUE", "T", "1")
    return bool(value)


def catalog_type(row: Mapping[str, Any]) -> str:
    """Render one information_schema column row as a normalized SQL type."""
    data_type = str(row.get("data_type") or "").strip()
    udt_name = str(row.get("udt_name") or "").strip()
    lowered = data_type.lower()

    if lowered == "array" and udt_name:
        return normalize_sql_type(udt_name)
    if lowered in ("user-defined", "") and udt_name:
        return normalize_sql_type(udt_name)

    if lowered in _LENGTH_TYPES and row.get("character_maximum_length"):
        return normalize_sql_type(f"{data_type}({int(row['character_maximum_length'])})")
    if lowered in _PRECISION_TYPES and row.get("numeric_precision"):
        scale = int(row.get("numeric_scale") or 0)
        return normalize_sql_type(f"{data_type}({int(row['numeric_precision'])}, {scale})")
    return normalize_sql_type(data_type)


def parse_catalog_default(raw: Any) -> tuple[ColumnDefault | None, bool]:
    """Classify a catalog ``column_default``.

    Returns ``(default, generated)``.  Sequence defaults (``nextval(...)``)
    mark the column as generated and carry no default of their own.
    """
    if raw is None:
        return None, False
    if isinstance(raw, bool) or isinstance(raw, (int, float)):
        return ColumnDefault.literal(raw), False

    text = str(raw).strip()
    if text.lower().startswith("nextval("):
        return None, True

    cast = _CAST_RE.match(text)
    if cast:
        text = cast.group("value").strip()

    if len(text) >= 2 and text[0] == text[-1] == "'":
        return ColumnDefault.literal(text[1:-1].replace("''", "'")), False

    lowered = text.lower()
    if lowered in ("true", "false"):
        return ColumnDefault.literal(lowered == "true"), False
    if lowered == "null":
        return None, False
    if _NUMBER_RE.match(text):
        return ColumnDefault.literal(float(text) if "." in text else int(text)), False

    call = _CALL_RE.match(text)
    name = call.group("name").lower() if call else lowered
    return ColumnDefault.expression(_EXPRESSION_NAMES.get(name, name)), False


def _group_rows(rows: Iterable[Mapping[str, Any]], key: str) -> dict[tuple[str, str], list[Mapping[str, Any]]]:
    grouped: dict[tuple[str, str], list[Mapping[str, Any]]] = {}
    for row in rows:
        grouped.setdefault((str(row["table_name"]), str(row[key])), []).append(row)
    return grouped


def model_from_catalog(
    columns: Iterable[Mapping[str, Any]],
    indexes: Iterable[Mapping[str, Any]] = (),
    foreign_keys: Iterable[Mapping[str, Any]] = (),
) -> Model:
    """Reverse-engineer a :class:`Model` from information_schema rows.

    Primary-key indexes mark their columns as primary and are not emitted as
    :class:`Index` objects, matching what the entity builder produces.
    """
    index_groups = _group_rows(indexes, "index_name")
    fk_groups = _group_rows(foreign_keys, "constraint_name")

    primary_columns: dict[str, set[str]] = {}
    table_indexes: dict[str, list[Index]] = {}
    for (table, name), rows in sorted(index_groups.items()):
        head = rows[0]
        if "columns" in head and head["columns"]:
            index_columns = [str(c) for c in head["columns"]]
        else:
            index_columns = [str(r["column_name"]) for r in rows]
        if _as_bool(head.get("is_primary", False)):
            primary_columns.setdefault(table, set()).update(index_columns)
            continue
        table_indexes.setdefault(table, []).append(
            Index(name=name, columns=index_columns, unique=_as_bool(head.get("is_unique", False)))
        )

    table_fks: dict[str, list[ForeignKey]] = {}
    for (table, name), rows in sorted(fk_groups.items()):
        rule = str(rows[0].get("delete_rule") or "").upper()
        table_fks.setdefault(table, []).append(
            ForeignKey(
                name=name,
                columns=[str(r["column_name"]) for r in rows],
                references=ForeignKeyReference(
                    table=str(rows[0]["foreign_table_name"]),
                    columns=[str(r["foreign_column_name"]) for r in rows],
                ),
                on_delete=rule if rule and rule != "NO ACTION" else None,
            )
        )

    table_columns: dict[str, dict[str, Column]] = {}
    for row in columns:
        table = str(row["table_name"])
        name = str(row["column_name"])
        default, sequence = parse_catalog_default(row.get("column_default"))
        is_primary = name in primary_columns.get(table, set())
        generated = sequence or _as_bool(row.get("is_identity", False))
        if is_primary and default is not None and default.is_expression:
            generated = True
        table_columns.setdefault(table, {})[name] = Column(
            name=name,
            type=catalog_type(row),
            nullable=_as_bool(row.get("is_nullable", True)),
            primary=is_primary,
            default=default,
            generated=generated,
        )

    tables = {
        name: Table(
            name=name,
            columns=cols,
            indexes=sorted(table_indexes.get(name, []), key=lambda i: i.name),
            foreign_keys=sorted(table_fks.get(name, []), key=lambda f: f.name),
        )
        for name, cols in table_columns.items()
    }

    orphaned = sorted((set(table_indexes) | set(table_fks)) - set(tables))
    if orphaned:
        logger.warning("Ignoring indexes/foreign keys for tables with no columns: %s", ", ".join(orphaned))

    model = Model(tables=tables)
    logger.debug("Introspected model %s with %d table(s)", model.hash[:8], len(tables))
    return model
