"""Pydantic models shared across the schema engine."""

from schema_engine.models.diff import ColumnModification, ColumnRename, FieldChange, SchemaDiff, TableDiff
from schema_engine.models.entity import (
    EntityDefinition,
    FieldKind,
    ParsedField,
    PrimitiveKind,
    SchemaArrayKind,
    SchemaReferenceKind,
)
from schema_engine.models.merge import Conflict, ConflictType, MergeResult
from schema_engine.models.schema import (
    Column,
    ColumnDefault,
    DefaultKind,
    ForeignKey,
    ForeignKeyReference,
    Index,
    Model,
    Table,
    compute_model_hash,
)
from schema_engine.models.snapshot import Snapshot, SnapshotMetadata
from schema_engine.models.state import EnvironmentState
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
    MigrationStep,
    ModifyColumnStep,
    RenameColumnStep,
    StepType,
    parse_steps,
    step_target,
)
from schema_engine.models.transition import EMPTY_HASH, Transition, TransitionMetadata, compute_transition_hash

__all__ = [
    # Schema
    "Column",
    "ColumnDefault",
    "DefaultKind",
    "ForeignKey",
    "ForeignKeyReference",
    "Index",
    "Model",
    "Table",
    "compute_model_hash",
    # Entities
    "EntityDefinition",
    "FieldKind",
    "ParsedField",
    "PrimitiveKind",
    "SchemaArrayKind",
    "SchemaReferenceKind",
    # Merge
    "Conflict",
    "ConflictType",
    "MergeResult",
    # Diff
    "ColumnModification",
    "ColumnRename",
    "FieldChange",
    "SchemaDiff",
    "TableDiff",
    # Steps
    "AddColumnStep",
    "AddForeignKeyStep",
    "AddIndexStep",
    "AddTableStep",
    "ColumnChanges",
    "DropColumnStep",
    "DropForeignKeyStep",
    "DropIndexStep",
    "DropTableStep",
    "MigrationStep",
    "ModifyColumnStep",
    "RenameColumnStep",
    "StepType",
    "parse_steps",
    "step_target",
    # Records
    "EMPTY_HASH",
    "EnvironmentState",
    "Snapshot",
    "SnapshotMetadata",
    "Transition",
    "TransitionMetadata",
    "compute_transition_hash",
]
