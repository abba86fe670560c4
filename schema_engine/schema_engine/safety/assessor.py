"""Risk classification and impact estimation for migration steps.

Every step is classified as SAFE, REVIEW or DANGEROUS.  Aggregation over
steps, transitions and whole paths always takes the *maximum* severity; risk
is never averaged down.

Impact estimates (rows touched, downtime) are advisory heuristics for human
review.  Nothing here blocks execution by itself except
:func:`validate_for_environment`, which callers opt into.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.diff.reverse import reverse_steps
from schema_engine.models.schema import Column, Model
from schema_engine.models.steps import (
    AddColumnStep,
    MigrationStep,
    ModifyColumnStep,
    RenameColumnStep,
    StepType,
)
from schema_engine.models.transition import Transition

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED_ENVIRONMENTS: tuple[str, ...] = ("production",)

# Environments that hold shared data even when not protected.
_SHARED_ENVIRONMENTS: frozenset[str] = frozenset({"staging"})

LARGE_MIGRATION_STEPS = 10


# ---------------------------------------------------------------------------
# Enums and models
# ---------------------------------------------------------------------------


class SafetyLevel(str, Enum):
    """Risk level of a step or migration.  Ordered SAFE < REVIEW < DANGEROUS."""

    SAFE = "SAFE"
    REVIEW = "REVIEW"
    DANGEROUS = "DANGEROUS"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY: dict[SafetyLevel, int] = {
    SafetyLevel.SAFE: 0,
    SafetyLevel.REVIEW: 1,
    SafetyLevel.DANGEROUS: 2,
}


def max_level(levels: Iterable[SafetyLevel]) -> SafetyLevel:
    """Most severe of *levels*; SAFE when empty."""
    return max(levels, key=lambda level: level.severity, default=SafetyLevel.SAFE)


class SafetyAssessment(BaseModel):
    """Risk classification of one step or an aggregate of steps."""

    model_config = ConfigDict(frozen=True)

    level: SafetyLevel = Field(..., description="Most severe level observed.")
    reasons: list[str] = Field(default_factory=list, description="De-duplicated reasons, in order of first occurrence.")

    @property
    def can_auto_deploy(self) -> bool:
        return self.level == SafetyLevel.SAFE

    @property
    def requires_approval(self) -> bool:
        return self.level != SafetyLevel.SAFE


class EnvironmentSafetyAssessment(SafetyAssessment):
    """Assessment with environment-specific warnings and recommendations."""

    environment: str
    protected: bool = Field(default=False, description="Whether the environment is protected.")
    blocked: bool = Field(default=False, description="Destructive changes blocked in this environment.")
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def can_auto_deploy(self) -> bool:
        return self.level == SafetyLevel.SAFE and not self.protected

    @property
    def requires_approval(self) -> bool:
        return self.level != SafetyLevel.SAFE or self.protected


class ImpactAnalysis(BaseModel):
    """Advisory blast-radius estimate for a transition."""

    model_config = ConfigDict(frozen=True)

    level: SafetyLevel = Field(default=SafetyLevel.SAFE, description="Most severe step level.")
    tables: list[str] = Field(default_factory=list, description="Affected tables, sorted.")
    estimated_rows: int = Field(default=0, description="Rows in affected tables, when row counts were supplied.")
    downtime: str = Field(default="0 seconds", description="Human-readable downtime estimate.")
    requires_backup: bool = False
    breaking: bool = False
    reversible: bool = True


class SafetySummary(BaseModel):
    """Display-ready summary of a transition's risk."""

    model_config = ConfigDict(frozen=True)

    level: SafetyLevel
    summary: str
    details: list[str] = Field(default_factory=list)


class EnvironmentValidation(BaseModel):
    """Outcome of :func:`validate_for_environment`."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Type widening
# ---------------------------------------------------------------------------

_TYPE_RE = re.compile(r"^(?P<base>[A-Z ]+?)(?:\((?P<params>[^)]*)\))?(?P<array>(?:\[\])*)$")

# Maps (old_base, new_base) -> lossless.  Pairs not listed are treated as
# narrowing (conservative).  Parameterised types are compared separately.
_WIDENING: dict[tuple[str, str], bool] = {
    ("SMALLINT", "INTEGER"): True,
    ("SMALLINT", "BIGINT"): True,
    ("INTEGER", "BIGINT"): True,
    ("SMALLINT", "REAL"): True,
    ("SMALLINT", "DOUBLE PRECISION"): True,
    ("INTEGER", "DOUBLE PRECISION"): True,
    ("REAL", "DOUBLE PRECISION"): True,
    ("SMALLINT", "DECIMAL"): True,
    ("INTEGER", "DECIMAL"): True,
    ("BIGINT", "DECIMAL"): True,
    ("CHAR", "VARCHAR"): True,
    ("CHAR", "TEXT"): True,
    ("VARCHAR", "TEXT"): True,
    ("UUID", "TEXT"): True,
    ("DATE", "TIMESTAMP WITH TIME ZONE"): True,
    ("DATE", "TIMESTAMP WITHOUT TIME ZONE"): True,
    ("JSON", "JSONB"): True,
    # Narrowing / lossy
    ("BIGINT", "INTEGER"): False,
    ("INTEGER", "SMALLINT"): False,
    ("DOUBLE PRECISION", "REAL"): False,
    ("TEXT", "VARCHAR"): False,
    ("TIMESTAMP WITH TIME ZONE", "DATE"): False,
}


def _split_type(sql_type: str) -> tuple[str, list[int], str] | None:
    match = _TYPE_RE.match(sql_type.strip().upper())
    if not match:
        return None
    params = match.group("params")
    try:
        values = [int(p) for p in params.split(",")] if params else []
    except ValueError:
        return None
    return match.group("base").strip(), values, match.group("array")


def is_widening(old_type: str, new_type: str) -> bool:
    """Whether changing *old_type* to *new_type* can never lose data.

    Unknown pairs are conservatively treated as narrowing.
    """
    if old_type == new_type:
        return True
    old = _split_type(old_type)
    new = _split_type(new_type)
    if old is None or new is None or old[2] != new[2]:
        return False
    (old_base, old_params, _), (new_base, new_params, _) = old, new

    if old_base == new_base:
        if old_base in ("VARCHAR", "CHAR") and old_params and new_params:
            return new_params[0] >= old_params[0]
        if old_base == "VARCHAR" and not new_params:
            return True
        if old_base == "DECIMAL" and len(old_params) == 2 and len(new_params) == 2:
            old_int = old_params[0] - old_params[1]
            new_int = new_params[0] - new_params[1]
            return new_int >= old_int and new_params[1] >= old_params[1]
        return False

    return _WIDENING.get((old_base, new_base), False)


# ---------------------------------------------------------------------------
# Step classification
# ---------------------------------------------------------------------------

_FIXED: dict[str, tuple[SafetyLevel, str]] = {
    StepType.ADD_TABLE.value: (SafetyLevel.SAFE, "Adding new table is non-breaking"),
    StepType.ADD_INDEX.value: (SafetyLevel.SAFE, "Adding index is non-breaking"),
    StepType.ADD_FOREIGN_KEY.value: (SafetyLevel.SAFE, "Adding foreign key validates existing rows"),
    StepType.DROP_INDEX.value: (SafetyLevel.REVIEW, "Dropping index may affect query performance"),
    StepType.DROP_FOREIGN_KEY.value: (
        SafetyLevel.REVIEW,
        "Dropping foreign key removes referential integrity checks",
    ),
    StepType.RENAME_COLUMN.value: (SafetyLevel.REVIEW, "Renaming column may break code referencing the old name"),
    StepType.DROP_COLUMN.value: (SafetyLevel.DANGEROUS, "Dropping column will delete data"),
    StepType.DROP_TABLE.value: (SafetyLevel.DANGEROUS, "Dropping table will delete all data"),
}


def _classify_add_column(step: AddColumnStep) -> SafetyAssessment:
    column = step.column
    if column.nullable:
        return SafetyAssessment(level=SafetyLevel.SAFE, reasons=["Adding nullable column is non-breaking"])
    if column.default is not None or column.generated:
        return SafetyAssessment(level=SafetyLevel.SAFE, reasons=["Adding column with a default is non-breaking"])
    return SafetyAssessment(
        level=SafetyLevel.SAFE,
        reasons=["Adding non-nullable column without a default requires a backfill on populated tables"],
    )


def _classify_modify_column(step: ModifyColumnStep, before: Column | None) -> SafetyAssessment:
    changes = step.changes
    level = SafetyLevel.SAFE
    reasons: list[str] = []

    if changes.type is not None:
        if before is not None and is_widening(before.type, changes.type):
            reasons.append(f"Widening column type {before.type} -> {changes.type} is non-breaking")
        else:
            level = SafetyLevel.REVIEW
            if before is None:
                reasons.append(f"Changing column type to {changes.type} may require data conversion")
            else:
                reasons.append(f"Changing column type {before.type} -> {changes.type} may lose data")

    if changes.nullable is False:
        level = SafetyLevel.REVIEW
        reasons.append("Making column NOT NULL fails if existing rows contain NULLs")
    elif changes.nullable is True:
        reasons.append("Making column nullable is non-breaking")

    if changes.primary is not None:
        level = SafetyLevel.REVIEW
        reasons.append("Changing primary key membership rewrites the key constraint")

    if changes.generated is not None:
        level = max_level([level, SafetyLevel.REVIEW])
        reasons.append("Changing generated flag alters how values are produced")

    if changes.default is not None or changes.drop_default:
        reasons.append("Changing column default is non-breaking")

    return SafetyAssessment(level=level, reasons=reasons)


def classify_step(step: MigrationStep, before: Column | None = None) -> SafetyAssessment:
    """Classify a single step.

    Parameters
    ----------
    before:
        For ``modify_column``, the column definition before the change.
        Without it, any type change is treated as potentially narrowing.
    """
    if isinstance(step, AddColumnStep):
        return _classify_add_column(step)
    if isinstance(step, ModifyColumnStep):
        return _classify_modify_column(step, before)
    level, reason = _FIXED[step.type]
    return SafetyAssessment(level=level, reasons=[reason])


def _aggregate(assessments: Iterable[SafetyAssessment]) -> SafetyAssessment:
    items = list(assessments)
    reasons = list(dict.fromkeys(reason for a in items for reason in a.reasons))
    return SafetyAssessment(level=max_level(a.level for a in items), reasons=reasons)


def classify_steps(steps: list[MigrationStep], pre_image: Model | None = None) -> list[SafetyAssessment]:
    """Per-step classification, looking up modified columns in *pre_image*."""
    renames = {(s.table, s.new_name): s.column for s in steps if isinstance(s, RenameColumnStep)}

    def before_of(step: MigrationStep) -> Column | None:
        if pre_image is None or not isinstance(step, ModifyColumnStep):
            return None
        table = pre_image.get_table(step.table)
        if table is None:
            return None
        return table.columns.get(renames.get((step.table, step.column), step.column))

    return [classify_step(step, before_of(step)) for step in steps]


def assess_steps(steps: list[MigrationStep], pre_image: Model | None = None) -> SafetyAssessment:
    """Aggregate classification of *steps* (maximum severity).

    *pre_image* supplies the before-definitions of modified columns so that
    known widenings can be recognised as safe.
    """
    return _aggregate(classify_steps(steps, pre_image))


def assess_transition(transition: Transition) -> SafetyAssessment:
    """Classify a transition, using its retained pre-image when present."""
    return assess_steps(transition.steps, transition.metadata.pre_image)


def assess_path(transitions: Iterable[Transition]) -> SafetyAssessment:
    """Classify a multi-transition path; the worst transition decides."""
    return _aggregate(assess_transition(t) for t in transitions)


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------

_DATA_REWRITE_STEPS = frozenset(
    {StepType.DROP_TABLE.value, StepType.DROP_COLUMN.value, StepType.MODIFY_COLUMN.value}
)


_BREAKING_STEPS = frozenset(
    {StepType.DROP_TABLE.value, StepType.DROP_COLUMN.value, StepType.RENAME_COLUMN.value}
)


def _is_breaking(step: MigrationStep, assessment: SafetyAssessment) -> bool:
    """Whether existing application code or data may stop working."""
    if step.type in _BREAKING_STEPS:
        return True
    if isinstance(step, AddColumnStep):
        column = step.column
        return not column.nullable and column.default is None and not column.generated
    if isinstance(step, ModifyColumnStep):
        return assessment.level != SafetyLevel.SAFE
    return False


def _estimate_downtime(step_count: int, rows: int) -> str:
    if rows > 10_000_000:
        return "> 10 minutes"
    if rows > 1_000_000:
        return "< 10 minutes"
    if step_count > LARGE_MIGRATION_STEPS or rows > 100_000:
        return "< 1 minute"
    if step_count > 5:
        return "< 30 seconds"
    if step_count > 0:
        return "< 10 seconds"
    return "0 seconds"


def analyze_impact(transition: Transition, row_counts: dict[str, int] | None = None) -> ImpactAnalysis:
    """Estimate the blast radius of *transition*.

    Parameters
    ----------
    row_counts:
        Optional ``table -> row count`` supplied by the caller (e.g. from
        ``pg_class.reltuples``).  Used for row and downtime estimates only.
    """
    steps = transition.steps
    tables = sorted({step.table for step in steps})
    counts = row_counts or {}
    estimated_rows = sum(counts.get(table, 0) for table in tables)

    pre_image = transition.metadata.pre_image
    per_step = classify_steps(steps, pre_image)
    requires_backup = any(step.type in _DATA_REWRITE_STEPS for step in steps)
    breaking = any(_is_breaking(step, assessment) for step, assessment in zip(steps, per_step))
    reversible = reverse_steps(steps, pre_image).complete
    level = max_level(a.level for a in per_step)

    impact = ImpactAnalysis(
        level=level,
        tables=tables,
        estimated_rows=estimated_rows,
        downtime=_estimate_downtime(len(steps), estimated_rows),
        requires_backup=requires_backup,
        breaking=breaking,
        reversible=reversible,
    )
    logger.debug("Impact of %s: level=%s tables=%d", transition.hash[:8], impact.level.value, len(tables))
    return impact


_SUMMARIES: dict[SafetyLevel, str] = {
    SafetyLevel.SAFE: "Safe to auto-deploy - all changes are non-breaking",
    SafetyLevel.REVIEW: "Requires review - some changes may need attention",
    SafetyLevel.DANGEROUS: "Dangerous - manual approval required, data loss possible",
}


def get_safety_summary(transition: Transition, row_counts: dict[str, int] | None = None) -> SafetySummary:
    """Combine assessment and impact into display-ready text."""
    assessment = assess_transition(transition)
    impact = analyze_impact(transition, row_counts)
    details = [
        *assessment.reasons,
        f"Affected tables: {', '.join(impact.tables) or 'none'}",
        f"Estimated downtime: {impact.downtime}",
        "Backup recommended" if impact.requires_backup else "No backup required",
        "Breaking changes detected" if impact.breaking else "No breaking changes",
        "Fully reversible" if impact.reversible else "Contains irreversible steps",
    ]
    return SafetySummary(level=assessment.level, summary=_SUMMARIES[assessment.level], details=details)


# ---------------------------------------------------------------------------
# Environment policy
# ---------------------------------------------------------------------------


def assess_for_environment(
    steps: list[MigrationStep],
    environment: str,
    protected_environments: Iterable[str] = DEFAULT_PROTECTED_ENVIRONMENTS,
    pre_image: Model | None = None,
) -> EnvironmentSafetyAssessment:
    """Assess *steps* with warnings and recommendations for *environment*."""
    base = assess_steps(steps, pre_image)
    protected = environment in set(protected_environments)
    warnings: list[str] = []
    recommendations: list[str] = []
    blocked = False

    if protected:
        if base.level == SafetyLevel.DANGEROUS:
            blocked = True
            warnings.append(f"Destructive operations are blocked in {environment} by default")
            recommendations.append("Set allow_destructive to override (not recommended)")
            recommendations.append("Consider shadow columns for zero-downtime migrations")
        if base.level.severity >= SafetyLevel.REVIEW.severity:
            warnings.append(f"This migration should be tested before running in {environment}")
            recommendations.append("Create a backup before running this migration")
        if len(steps) > LARGE_MIGRATION_STEPS:
            warnings.append("Large migration with many steps - consider splitting")
            recommendations.append("Run during a low-traffic period")

    if any(s.type in (StepType.DROP_TABLE.value, StepType.DROP_COLUMN.value) for s in steps):
        recommendations.append("Verify data backup before proceeding")
        recommendations.append("Consider keeping dropped data in a separate table first")
    if any(s.type == StepType.MODIFY_COLUMN.value for s in steps):
        recommendations.append("Test data conversion with a sample of production data")

    return EnvironmentSafetyAssessment(
        level=base.level,
        reasons=base.reasons,
        environment=environment,
        protected=protected,
        blocked=blocked,
        warnings=warnings,
        recommendations=list(dict.fromkeys(recommendations)),
    )


def validate_for_environment(
    steps: list[MigrationStep],
    environment: str,
    protected_environments: Iterable[str] = DEFAULT_PROTECTED_ENVIRONMENTS,
    allow_destructive: bool = False,
) -> EnvironmentValidation:
    """Reject destructive steps in protected environments unless explicitly allowed."""
    assessment = assess_for_environment(steps, environment, protected_environments)
    errors: list[str] = []
    if assessment.protected and assessment.level == SafetyLevel.DANGEROUS and not allow_destructive:
        errors.append(f"Destructive operations are not allowed in {environment}")
        errors.append("Set allow_destructive to override (not recommended)")
    if errors:
        logger.warning("Migration rejected for %s: %d destructive-step error(s)", environment, len(errors))
    return EnvironmentValidation(valid=not errors, errors=errors, warnings=assessment.warnings)


def get_pre_migration_checks(
    steps: list[MigrationStep],
    environment: str,
    protected_environments: Iterable[str] = DEFAULT_PROTECTED_ENVIRONMENTS,
) -> list[str]:
    """Checklist an operator should run through before applying *steps*."""
    protected = environment in set(protected_environments)
    checks = ["Verify database connection"]

    if protected or environment in _SHARED_ENVIRONMENTS:
        checks.append("Create database backup")
        checks.append("Verify backup is accessible and restorable")
        checks.append("Notify relevant team members")

    if any(s.type in (StepType.DROP_TABLE.value, StepType.DROP_COLUMN.value) for s in steps):
        checks.append("Confirm data in dropped columns/tables is not needed")
        checks.append("Verify no application code references dropped schema")

    if any(s.type == StepType.MODIFY_COLUMN.value for s in steps):
        checks.append("Verify data can be converted to new column types")
        checks.append("Test migration on staging with production-like data")

    if protected:
        checks.append("Schedule migration during low-traffic period")
        checks.append("Have rollback plan ready")
        checks.append("Monitor application after migration")

    return checks
