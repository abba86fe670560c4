"""Schema evolution engine: content-addressed schema snapshots, transitions and safe migration planning."""

from schema_engine.builder import build_model, entities_to_model, model_from_catalog, normalize_sql_type
from schema_engine.config import Settings, load_settings
from schema_engine.diff import (
    apply_steps,
    compute_diff,
    diff_to_steps,
    is_reversible,
    replay_transitions,
    require_reversible,
    reverse_steps,
    validate_steps,
)
from schema_engine.errors import (
    CircularReferenceError,
    IrreversibleStepError,
    MergeConflictError,
    NotFoundError,
    SchemaConflictError,
    SchemaEngineError,
    SnapshotNotFoundError,
    StoreCorruptionError,
    StructuralError,
    TransitionNotFoundError,
)
from schema_engine.graph import build_transition_graph, find_path, find_reverse_path, require_path
from schema_engine.logging_config import JSONFormatter, configure_logging
from schema_engine.merge import can_auto_merge, create_merge_snapshot, detect_conflicts, merge_schemas
from schema_engine.models import (
    Column,
    Conflict,
    ConflictType,
    EnvironmentState,
    ForeignKey,
    Index,
    MigrationStep,
    MergeResult,
    Model,
    SchemaDiff,
    Snapshot,
    SnapshotMetadata,
    Table,
    Transition,
    TransitionMetadata,
)
from schema_engine.planner import plan_deployment, plan_rollback, plan_transition, record_applied
from schema_engine.safety import SafetyLevel, analyze_impact, assess_transition, get_safety_summary
from schema_engine.store import (
    FileSchemaStore,
    InMemorySchemaStore,
    SchemaStore,
    create_snapshot,
    create_transition,
    get_all_states,
    get_current_snapshot,
    open_store,
    update_state,
)

__version__ = "0.1.0"

__all__ = [
    # Model building
    "build_model",
    "entities_to_model",
    "model_from_catalog",
    "normalize_sql_type",
    # Diff and steps
    "apply_steps",
    "compute_diff",
    "diff_to_steps",
    "is_reversible",
    "replay_transitions",
    "require_reversible",
    "reverse_steps",
    "validate_steps",
    # Records and store
    "FileSchemaStore",
    "InMemorySchemaStore",
    "SchemaStore",
    "create_snapshot",
    "create_transition",
    "get_all_states",
    "get_current_snapshot",
    "open_store",
    "update_state",
    # Graph
    "build_transition_graph",
    "find_path",
    "find_reverse_path",
    "require_path",
    # Safety
    "SafetyLevel",
    "analyze_impact",
    "assess_transition",
    "get_safety_summary",
    # Planning
    "plan_deployment",
    "plan_rollback",
    "plan_transition",
    "record_applied",
    # Three-way merge
    "can_auto_merge",
    "create_merge_snapshot",
    "detect_conflicts",
    "merge_schemas",
    # Models
    "Conflict",
    "ConflictType",
    "MergeResult",
    "Column",
    "EnvironmentState",
    "ForeignKey",
    "Index",
    "MigrationStep",
    "Model",
    "SchemaDiff",
    "Snapshot",
    "SnapshotMetadata",
    "Table",
    "Transition",
    "TransitionMetadata",
    # Configuration
    "Settings",
    "load_settings",
    # Logging
    "JSONFormatter",
    "configure_logging",
    # Errors
    "CircularReferenceError",
    "IrreversibleStepError",
    "MergeConflictError",
    "NotFoundError",
    "SchemaConflictError",
    "SchemaEngineError",
    "SnapshotNotFoundError",
    "StoreCorruptionError",
    "StructuralError",
    "TransitionNotFoundError",
]
