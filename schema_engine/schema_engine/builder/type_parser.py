"""Parser for the field shorthand syntax used in entity definitions.

Grammar::

    type[(params)][[]][!|?] [modifier ...] [= default]

Examples::

    "uuid!"                      -> uuid, NOT NULL
    "string(100)"                -> string, length 100, nullable
    "string(3..50)!"             -> string, length 50, NOT NULL
    "decimal(10, 2)"             -> decimal, precision 10, scale 2
    "enum(draft, published)"     -> enum with two values
    "string[]"                   -> array of string
    "email! unique"              -> email, NOT NULL, unique index
    "uuid! primary = gen_uuid"   -> primary key with an expression default
    "timestamp = now()"          -> expression default
    "int = 0"                    -> literal default
    "User!"                      -> required reference to entity User

The parser only recognises syntax.  Whether a base type is a known primitive
or an entity reference is decided later by the entity parser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from schema_engine.errors import StructuralError
from schema_engine.hashing import canonical_json
from schema_engine.models.schema import ColumnDefault

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

KNOWN_MODIFIERS: frozenset[str] = frozenset(
    {
        "primary",
        "unique",
        "indexed",
        "generated",
        "readonly",
        "cascade",
    }
)

# Defaults that name a database function rather than a literal value.
EXPRESSION_DEFAULTS: frozenset[str] = frozenset(
    {
        "now",
        "gen_uuid",
        "uuid",
        "random",
        "current_timestamp",
        "current_date",
    }
)

_HEAD_RE = re.compile(
    r"^(?P<base>[A-Za-z_]\w*)"
    r"(?:\((?P<params>[^)]*)\))?"
    r"(?P<array1>\[\])?"
    r"(?P<mark>[!?])?"
    r"(?P<array2>\[\])?"
    r"(?P<rest>(?:\s.*)?)$"
)
_DEFAULT_RE = re.compile(r"\s+=\s+(?P<value>.+)$")
_FUNCTION_RE = re.compile(r"^(?P<name>\w+)\(\)$")
_RANGE_RE = re.compile(r"^\s*(?P<low>-?\d+)?\s*\.\.\s*(?P<high>-?\d+)?\s*$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class TypeExpression:
    """Syntactic result of parsing one shorthand string."""

    base: str
    params: str | None = None
    array: bool = False
    nullable: bool | None = None  # None means "not stated"
    modifiers: set[str] = field(default_factory=set)
    default: ColumnDefault | None = None

    @property
    def is_capitalized(self) -> bool:
        return self.base[:1].isupper()


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def parse_default(raw: object) -> ColumnDefault:
    """Classify a default as an expression tag or a literal.

    Strings naming a function (``now``, ``gen_uuid()``, ...) become
    expression defaults.  Other scalars are literals; JSON containers are
    stored as their canonical JSON text.
    """
    if isinstance(raw, bool) or isinstance(raw, (int, float)) or raw is None:
        return ColumnDefault.literal(raw)
    if isinstance(raw, (dict, list)):
        return ColumnDefault.literal(canonical_json(raw))
    if not isinstance(raw, str):
        raise StructuralError(f"Unsupported default value: {raw!r}")

    text = raw.strip()
    func = _FUNCTION_RE.match(text)
    if func:
        return ColumnDefault.expression(func.group("name").lower())
    if text.lower() in EXPRESSION_DEFAULTS:
        return ColumnDefault.expression(text.lower())
    return ColumnDefault.literal(text)


def _parse_shorthand_default(text: str) -> ColumnDefault:
    """Parse the right-hand side of ``= value`` in shorthand syntax."""
    value = text.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return ColumnDefault.literal(value[1:-1])
    lowered = value.lower()
    if lowered in ("true", "false"):
        return ColumnDefault.literal(lowered == "true")
    if lowered == "null":
        return ColumnDefault.literal(None)
    if _INT_RE.match(value):
        return ColumnDefault.literal(int(value))
    if _FLOAT_RE.match(value):
        return ColumnDefault.literal(float(value))
    return parse_default(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_type_expression(text: str) -> TypeExpression:
    """Parse a shorthand field definition.

    Raises
    ------
    StructuralError
        If the string is empty, syntactically invalid, or uses an unknown
        modifier.
    """
    source = text.strip()
    if not source:
        raise StructuralError("Empty type definition")

    default: ColumnDefault | None = None
    default_match = _DEFAULT_RE.search(source)
    if default_match:
        default = _parse_shorthand_default(default_match.group("value"))
        source = source[: default_match.start()].strip()

    head = _HEAD_RE.match(source)
    if not head:
        raise StructuralError(f"Invalid type syntax: {text!r}")

    if head.group("array1") and head.group("array2"):
        raise StructuralError(f"Array marker given twice: {text!r}")

    modifiers: set[str] = set()
    for token in head.group("rest").split():
        if token not in KNOWN_MODIFIERS:
            raise StructuralError(f"Unknown modifier {token!r} in {text!r}")
        modifiers.add(token)

    mark = head.group("mark")
    return TypeExpression(
        base=head.group("base"),
        params=head.group("params"),
        array=bool(head.group("array1") or head.group("array2")),
        nullable=None if mark is None else mark == "?",
        modifiers=modifiers,
        default=default,
    )


def parse_length_params(params: str) -> tuple[int | None, int | None]:
    """Parse ``"100"`` or ``"3..50"`` into ``(min_length, max_length)``."""
    text = params.strip()
    if _INT_RE.match(text):
        return None, int(text)
    rng = _RANGE_RE.match(text)
    if rng:
        low = rng.group("low")
        high = rng.group("high")
        return (int(low) if low else None), (int(high) if high else None)
    raise StructuralError(f"Invalid length parameters: {params!r}")


def parse_precision_params(params: str) -> tuple[int | None, int | None]:
    """Parse ``"10, 2"`` or ``"10"`` into ``(precision, scale)``."""
    parts = [p.strip() for p in params.split(",")]
    if not 1 <= len(parts) <= 2 or not all(_INT_RE.match(p) for p in parts):
        raise StructuralError(f"Invalid precision parameters: {params!r}")
    precision = int(parts[0])
    scale = int(parts[1]) if len(parts) == 2 else None
    return precision, scale


def parse_enum_params(params: str) -> list[str]:
    """Parse ``"draft, published"`` into a list of enum values."""
    values = [p.strip().strip("'\"") for p in params.split(",")]
    values = [v for v in values if v]
    if not values:
        raise StructuralError("enum() requires at least one value")
    return values
