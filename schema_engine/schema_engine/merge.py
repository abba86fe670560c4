"""Three-way merge of entity definitions.

Two branches (``local`` and ``remote``) that diverged from a common ``base``
are merged entity by entity and field by field.  A side that left something
exactly as it was in the base yields to the side that changed it; when both
sides changed the same thing, the change is kept only if both produce the same
parsed field.  Anything else is reported as a :class:`Conflict` and no merged
definitions are returned.

Raw definitions are compared first so that untouched input survives verbatim.
Fields both branches rewrote are compared after parsing, so ``"string!"`` and
``{"type": "string", "required": True}`` agree.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from schema_engine.builder.entity_parser import parse_entity, snake_case
from schema_engine.errors import MergeConflictError, StructuralError
from schema_engine.hashing import canonical_json
from schema_engine.models.entity import ParsedField, PrimitiveKind, SchemaArrayKind, SchemaReferenceKind
from schema_engine.models.merge import Conflict, ConflictType, MergeResult
from schema_engine.models.snapshot import Snapshot, SnapshotMetadata
from schema_engine.store.base import SchemaStore
from schema_engine.store.records import create_snapshot

logger = logging.getLogger(__name__)

_CONFLICT = object()


def _resolve(base: Any, local: Any, remote: Any) -> Any:
    """Standard three-way pick; ``None`` means absent, ``_CONFLICT`` means both sides changed."""
    if local == remote:
        return local
    if local == base:
        return remote
    if remote == base:
        return local
    return _CONFLICT


def _ordered_union(*keys: Any) -> list[str]:
    seen: dict[str, None] = {}
    for group in keys:
        for key in group:
            seen.setdefault(key, None)
    return list(seen)


def _describe(raw: Any) -> str:
    return raw if isinstance(raw, str) else canonical_json(raw)


def _describe_kind(kind: PrimitiveKind | SchemaReferenceKind | SchemaArrayKind) -> str:
    if isinstance(kind, SchemaReferenceKind):
        return kind.target
    if isinstance(kind, SchemaArrayKind):
        return f"{kind.target}[]"
    text = kind.name
    if kind.length is not None:
        text += f"({kind.length})"
    elif kind.precision is not None:
        text += f"({kind.precision},{kind.scale or 0})"
    elif kind.enum_values:
        text += f"({','.join(kind.enum_values)})"
    return text + ("[]" if kind.array else "")


# ---------------------------------------------------------------------------
# Entity shapes
# ---------------------------------------------------------------------------


@dataclass
class _EntityParts:
    """An entity definition split into the pieces merged independently."""

    fields: dict[str, Any]
    table: str | None = None
    indexes: list[Any] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    full_form: bool = False

    @classmethod
    def of(cls, name: str, definition: Any) -> _EntityParts:
        if definition is None:
            return cls(fields={})
        if not isinstance(definition, Mapping):
            raise StructuralError("Entity definition must be a mapping", entity=name)
        if not isinstance(definition.get("fields"), Mapping):
            return cls(fields=dict(definition))
        options = {k: v for k, v in definition.items() if k not in ("fields", "table", "indexes")}
        return cls(
            fields=dict(definition["fields"]),
            table=definition.get("table"),
            indexes=list(definition.get("indexes") or []),
            options=options,
            full_form=True,
        )


def _parse_field(entity: str, name: str, raw: Any, entity_names: set[str]) -> ParsedField:
    return parse_entity(entity, {"fields": {name: raw}}, entity_names).fields[0]


def _field_conflict(entity: str, name: str, local: Any, remote: Any, entity_names: set[str]) -> Conflict | None:
    local_field = _parse_field(entity, name, local, entity_names)
    remote_field = _parse_field(entity, name, remote, entity_names)
    if local_field == remote_field:
        return None

    if local_field.kind != remote_field.kind:
        local_type = _describe_kind(local_field.kind)
        remote_type = _describe_kind(remote_field.kind)
        return Conflict(
            type=ConflictType.FIELD_TYPE_MISMATCH,
            entity=entity,
            field=name,
            description=f"Field {entity}.{name} has type mismatch: {local_type} vs {remote_type}",
            local_change=f"type: {local_type}",
            remote_change=f"type: {remote_type}",
        )
    if local_field.nullable != remote_field.nullable:
        local_required = not local_field.nullable
        remote_required = not remote_field.nullable
        return Conflict(
            type=ConflictType.FIELD_REQUIRED_MISMATCH,
            entity=entity,
            field=name,
            description=f"Field {entity}.{name} has required mismatch: {local_required} vs {remote_required}",
            local_change=f"required: {local_required}",
            remote_change=f"required: {remote_required}",
        )
    return Conflict(
        type=ConflictType.AMBIGUOUS_CHANGE,
        entity=entity,
        field=name,
        description=f"Field {entity}.{name} was changed differently in both branches",
        local_change=_describe(local),
        remote_change=_describe(remote),
    )


def _merge_entity(
    name: str,
    base: Any,
    local: Any,
    remote: Any,
    entity_names: set[str],
    conflicts: list[Conflict],
) -> dict[str, Any]:
    """Merge one entity both branches changed, appending to *conflicts*."""
    parts = [_EntityParts.of(name, d) for d in (base, local, remote)]
    base_parts, local_parts, remote_parts = parts
    default_table = snake_case(name)

    local_table = local_parts.table or default_table
    remote_table = remote_parts.table or default_table
    table = _resolve(base_parts.table or default_table, local_table, remote_table)
    if table is _CONFLICT:
        conflicts.append(
            Conflict(
                type=ConflictType.AMBIGUOUS_CHANGE,
                entity=name,
                description=f"Entity {name} has different table names: {local_table} vs {remote_table}",
                local_change=f"table: {local_table}",
                remote_change=f"table: {remote_table}",
            )
        )
        table = local_table

    fields: dict[str, Any] = {}
    for field_name in _ordered_union(base_parts.fields, local_parts.fields, remote_parts.fields):
        base_raw = base_parts.fields.get(field_name)
        local_raw = local_parts.fields.get(field_name)
        remote_raw = remote_parts.fields.get(field_name)
        merged = _resolve(base_raw, local_raw, remote_raw)
        if merged is not _CONFLICT:
            if merged is not None:
                fields[field_name] = copy.deepcopy(merged)
            continue

        if local_raw is None or remote_raw is None:
            removed_in = "local" if local_raw is None else "remote"
            kept_in = "remote" if local_raw is None else "local"
            conflicts.append(
                Conflict(
                    type=ConflictType.FIELD_REMOVED_BUT_USED,
                    entity=name,
                    field=field_name,
                    description=f"Field {name}.{field_name} was removed in {removed_in} but modified in {kept_in}",
                    local_change="removed" if local_raw is None else "modified",
                    remote_change="removed" if remote_raw is None else "modified",
                )
            )
            continue

        conflict = _field_conflict(name, field_name, local_raw, remote_raw, entity_names)
        if conflict is None:
            fields[field_name] = copy.deepcopy(local_raw)
        else:
            conflicts.append(conflict)

    indexes = _resolve(base_parts.indexes, local_parts.indexes, remote_parts.indexes)
    if indexes is _CONFLICT:
        indexes = list(local_parts.indexes)
        indexes.extend(i for i in remote_parts.indexes if i not in local_parts.indexes)

    options: dict[str, Any] = {}
    for key in _ordered_union(base_parts.options, local_parts.options, remote_parts.options):
        local_value = local_parts.options.get(key)
        remote_value = remote_parts.options.get(key)
        value = _resolve(base_parts.options.get(key), local_value, remote_value)
        if value is _CONFLICT:
            conflicts.append(
                Conflict(
                    type=ConflictType.AMBIGUOUS_CHANGE,
                    entity=name,
                    description=f"Entity {name} option {key!r} was changed differently in both branches",
                    local_change=f"{key}: {_describe(local_value)}",
                    remote_change=f"{key}: {_describe(remote_value)}",
                )
            )
        elif value is not None:
            options[key] = copy.deepcopy(value)

    full_form = any(p.full_form for p in parts) or table != default_table or indexes or options
    if not full_form:
        return fields
    definition: dict[str, Any] = {"fields": fields}
    if table != default_table:
        definition["table"] = table
    if indexes:
        definition["indexes"] = copy.deepcopy(indexes)
    definition.update(options)
    return definition


def _dangling_references(
    merged: Mapping[str, Any],
    local: Mapping[str, Any],
    remote: Mapping[str, Any],
    entity_names: set[str],
) -> list[Conflict]:
    """Report fields that point at an entity one branch removed."""
    conflicts = []
    for name in sorted(merged):
        entity = parse_entity(name, merged[name], entity_names)
        for parsed in entity.fields:
            if isinstance(parsed.kind, PrimitiveKind) or parsed.kind.target in merged:
                continue
            target = parsed.kind.target
            conflicts.append(
                Conflict(
                    type=ConflictType.ENTITY_REMOVED_BUT_USED,
                    entity=name,
                    field=parsed.name,
                    description=f"Entity {target} was removed but {name}.{parsed.name} still references it",
                    local_change="removed" if target not in local else f"uses {target}",
                    remote_change="removed" if target not in remote else f"uses {target}",
                )
            )
    return conflicts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def merge_schemas(
    base: Mapping[str, Any],
    local: Mapping[str, Any],
    remote: Mapping[str, Any],
) -> MergeResult:
    """Merge *local* and *remote* entity definitions against their common *base*.

    Raises
    ------
    StructuralError
        If a definition the merge has to parse is itself invalid.
    """
    entity_names = set(base) | set(local) | set(remote)
    conflicts: list[Conflict] = []
    merged: dict[str, Any] = {}

    for name in sorted(entity_names):
        base_def = base.get(name)
        local_def = local.get(name)
        remote_def = remote.get(name)
        resolved = _resolve(base_def, local_def, remote_def)
        if resolved is not _CONFLICT:
            if resolved is not None:
                merged[name] = copy.deepcopy(resolved)
            continue

        if local_def is None or remote_def is None:
            removed_in = "local" if local_def is None else "remote"
            kept_in = "remote" if local_def is None else "local"
            conflicts.append(
                Conflict(
                    type=ConflictType.ENTITY_REMOVED_BUT_USED,
                    entity=name,
                    description=f"Entity {name} was removed in {removed_in} but modified in {kept_in}",
                    local_change="removed" if local_def is None else "modified",
                    remote_change="removed" if remote_def is None else "modified",
                )
            )
            continue

        merged[name] = _merge_entity(name, base_def, local_def, remote_def, entity_names, conflicts)

    if not conflicts:
        conflicts = _dangling_references(merged, local, remote, entity_names)

    if conflicts:
        logger.warning("Merge found %d conflict(s): %s", len(conflicts), ", ".join(c.location for c in conflicts))
        return MergeResult(conflicts=conflicts)

    logger.info("Merged %d entities without conflicts", len(merged))
    return MergeResult(merged=merged)


def detect_conflicts(
    base: Mapping[str, Any],
    local: Mapping[str, Any],
    remote: Mapping[str, Any],
) -> list[Conflict]:
    return merge_schemas(base, local, remote).conflicts


def can_auto_merge(base: Mapping[str, Any], local: Mapping[str, Any], remote: Mapping[str, Any]) -> bool:
    return merge_schemas(base, local, remote).can_auto_merge


def create_merge_snapshot(
    base: Snapshot,
    local: Snapshot,
    remote: Snapshot,
    metadata: SnapshotMetadata | None = None,
    store: SchemaStore | None = None,
) -> Snapshot:
    """Merge two snapshots into a new one whose parent is their common *base*.

    Both merged snapshot hashes are kept in ``metadata.merged_from``.  The
    snapshot is saved when a *store* is given.

    Raises
    ------
    MergeConflictError
        If the branches cannot be merged automatically.
    StructuralError
        If the merged definitions do not build into a valid model.
    """
    result = merge_schemas(base.entities, local.entities, remote.entities)
    if result.merged is None:
        raise MergeConflictError(result.conflicts)

    meta = metadata or SnapshotMetadata()
    updates: dict[str, Any] = {"merged_from": [local.hash, remote.hash]}
    if not meta.description:
        updates["description"] = f"Merge of {local.hash[:8]} and {remote.hash[:8]}"
    snapshot = create_snapshot(result.merged, meta.model_copy(update=updates), parent_hash=base.hash)

    if store is not None:
        store.save_snapshot(snapshot)
    logger.info("Created merge snapshot %s from %s and %s", snapshot.hash[:8], local.hash[:8], remote.hash[:8])
    return snapshot
