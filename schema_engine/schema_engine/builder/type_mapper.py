"""Mapping from entity field types to normalized SQL type strings.

Types are rendered in a PostgreSQL flavour and then passed through
:func:`normalize_sql_type`, which is also applied to ``dbType`` overrides and
to types read back from a live catalog.  Normalization makes spelling
variants (``int4``, ``integer``, ``INT``) hash and compare as equal.
"""

from __future__ import annotations

import re

from schema_engine.errors import StructuralError

DEFAULT_STRING_LENGTH = 255

# Every primitive an entity field may declare.  Anything else is either an
# entity reference (capitalized) or an error.
PRIMITIVE_TYPES: frozenset[str] = frozenset(
    {
        # Strings
        "string",
        "text",
        "email",
        "url",
        "slug",
        "phone",
        "uuid",
        # Numbers
        "int",
        "integer",
        "number",
        "int8",
        "int16",
        "int32",
        "int64",
        "bigint",
        "uint",
        "decimal",
        "money",
        "float",
        "double",
        # Boolean
        "boolean",
        "bool",
        # Date / time
        "date",
        "time",
        "timestamp",
        "timestamptz",
        "timestamplocal",
        "datetime",
        "datetimetz",
        "datetimelocal",
        "interval",
        "duration",
        # Complex
        "json",
        "jsonb",
        "binary",
        "base64",
        "enum",
    }
)

LENGTH_TYPES: frozenset[str] = frozenset({"string", "email", "url", "slug", "text", "phone"})
RANGE_TYPES: frozenset[str] = frozenset({"int", "integer", "number", "int8", "int16", "int32", "int64", "bigint", "uint"})
PRECISION_TYPES: frozenset[str] = frozenset({"decimal", "money"})

_FIXED_TYPES: dict[str, str] = {
    "text": "TEXT",
    "phone": "VARCHAR(20)",
    "uuid": "UUID",
    "int8": "SMALLINT",
    "int16": "SMALLINT",
    "int": "INTEGER",
    "integer": "INTEGER",
    "number": "INTEGER",
    "int32": "INTEGER",
    "uint": "INTEGER",
    "int64": "BIGINT",
    "bigint": "BIGINT",
    "float": "REAL",
    "double": "DOUBLE PRECISION",
    "boolean": "BOOLEAN",
    "bool": "BOOLEAN",
    "date": "DATE",
    "time": "TIME",
    "timestamp": "TIMESTAMP WITH TIME ZONE",
    "timestamptz": "TIMESTAMP WITH TIME ZONE",
    "datetime": "TIMESTAMP WITH TIME ZONE",
    "datetimetz": "TIMESTAMP WITH TIME ZONE",
    "timestamplocal": "TIMESTAMP WITHOUT TIME ZONE",
    "datetimelocal": "TIMESTAMP WITHOUT TIME ZONE",
    "interval": "INTERVAL",
    "duration": "INTERVAL",
    "json": "JSONB",
    "jsonb": "JSONB",
    "binary": "BYTEA",
    "base64": "TEXT",
    "enum": "VARCHAR(50)",
}

# Catalog / dialect spellings -> canonical spelling.  Keys are upper-cased
# base names without parameters.
_TYPE_ALIASES: dict[str, str] = {
    "INT": "INTEGER",
    "INT4": "INTEGER",
    "SERIAL": "INTEGER",
    "SERIAL4": "INTEGER",
    "INT2": "SMALLINT",
    "SMALLSERIAL": "SMALLINT",
    "INT8": "BIGINT",
    "BIGSERIAL": "BIGINT",
    "SERIAL8": "BIGINT",
    "BOOL": "BOOLEAN",
    "FLOAT4": "REAL",
    "FLOAT8": "DOUBLE PRECISION",
    "DOUBLE": "DOUBLE PRECISION",
    "NUMERIC": "DECIMAL",
    "CHARACTER VARYING": "VARCHAR",
    "CHARACTER": "CHAR",
    "BPCHAR": "CHAR",
    "TIMESTAMPTZ": "TIMESTAMP WITH TIME ZONE",
    "TIMESTAMP": "TIMESTAMP WITHOUT TIME ZONE",
    "TIMETZ": "TIME WITH TIME ZONE",
    "TIME": "TIME WITHOUT TIME ZONE",
    "JSON": "JSON",
}

_TYPE_RE = re.compile(r"^(?P<base>[A-Z_][A-Z0-9_ ]*?)\s*(?:\((?P<params>[^)]*)\))?\s*(?P<array>(?:\[\])*)$")


def normalize_sql_type(raw: str) -> str:
    """Return the canonical spelling of an SQL type.

    Whitespace is collapsed, names are upper-cased, aliases are resolved, and
    parameter lists are rendered as ``(a, b)``.  PostgreSQL array catalog
    names (``_int4``) become ``INTEGER[]``.  Unrecognised names pass through
    upper-cased.
    """
    text = " ".join(raw.strip().split()).upper()
    if not text:
        raise StructuralError("Empty SQL type")

    if text.startswith("_"):
        return normalize_sql_type(text[1:]) + "[]"

    match = _TYPE_RE.match(text)
    if not match:
        return text

    base = match.group("base").strip()
    # TIME is canonical as written by the entity mapper; only the catalog
    # spelling "TIME WITHOUT TIME ZONE" maps onto it.
    if base == "TIME WITHOUT TIME ZONE":
        base = "TIME"
    elif base != "TIME":
        base = _TYPE_ALIASES.get(base, base)

    rendered = base
    params = match.group("params")
    if params is not None:
        parts = [p.strip() for p in params.split(",") if p.strip()]
        if parts:
            rendered = f"{base}({', '.join(parts)})"
    return rendered + match.group("array")


def map_field_type(
    base: str,
    *,
    array: bool = False,
    length: int | None = None,
    precision: int | None = None,
    scale: int | None = None,
    db_type: str | None = None,
) -> str:
    """Render a primitive entity type as a normalized SQL type.

    Raises
    ------
    StructuralError
        If *base* is not a known primitive and no ``db_type`` override is given.
    """
    if db_type:
        return normalize_sql_type(db_type)

    name = base.lower()
    if name not in PRIMITIVE_TYPES:
        raise StructuralError(f"Unknown field type: {base!r}")

    if name in ("string", "email", "url", "slug"):
        sql = f"VARCHAR({length or DEFAULT_STRING_LENGTH})"
    elif name == "decimal":
        sql = f"DECIMAL({precision or 10}, {scale or 0})"
    elif name == "money":
        sql = f"DECIMAL({precision or 19}, {scale if scale is not None else 4})"
    else:
        sql = _FIXED_TYPES[name]

    if array:
        sql += "[]"
    return normalize_sql_type(sql)
