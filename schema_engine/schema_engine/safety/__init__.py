"""Safety classification, impact analysis and environment policy."""

from schema_engine.safety.assessor import (
    DEFAULT_PROTECTED_ENVIRONMENTS,
    EnvironmentSafetyAssessment,
    EnvironmentValidation,
    ImpactAnalysis,
    SafetyAssessment,
    SafetyLevel,
    SafetySummary,
    analyze_impact,
    assess_for_environment,
    assess_path,
    assess_steps,
    assess_transition,
    classify_step,
    classify_steps,
    get_pre_migration_checks,
    get_safety_summary,
    is_widening,
    max_level,
    validate_for_environment,
)

__all__ = [
    # Classification
    "SafetyAssessment",
    "SafetyLevel",
    "assess_path",
    "assess_steps",
    "assess_transition",
    "classify_step",
    "classify_steps",
    "is_widening",
    "max_level",
    # Impact
    "ImpactAnalysis",
    "SafetySummary",
    "analyze_impact",
    "get_safety_summary",
    # Environment policy
    "DEFAULT_PROTECTED_ENVIRONMENTS",
    "EnvironmentSafetyAssessment",
    "EnvironmentValidation",
    "assess_for_environment",
    "get_pre_migration_checks",
    "validate_for_environment",
]
