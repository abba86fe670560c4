"""Deterministic diffing, step generation, application and reversal."""

from schema_engine.diff.apply import WorkingSchema, apply_steps, replay_transitions
from schema_engine.diff.reverse import ReversalResult, invert_step, is_reversible, require_reversible, reverse_steps
from schema_engine.diff.schema_diff import column_changes, compute_diff, diff_tables
from schema_engine.diff.step_generator import diff_to_steps, step_sort_key
from schema_engine.diff.validator import StepValidationError, validate_steps, validate_transition

__all__ = [
    # Differencer
    "column_changes",
    "compute_diff",
    "diff_tables",
    # Step generation
    "diff_to_steps",
    "step_sort_key",
    # Application
    "WorkingSchema",
    "apply_steps",
    "replay_transitions",
    # Reversal
    "ReversalResult",
    "invert_step",
    "is_reversible",
    "require_reversible",
    "reverse_steps",
    # Validation
    "StepValidationError",
    "validate_steps",
    "validate_transition",
]
