"""Deployment and rollback planning."""

from schema_engine.planner.migration_planner import (
    DeploymentPlan,
    RollbackPlan,
    plan_deployment,
    plan_rollback,
    plan_transition,
    record_applied,
    record_rolled_back,
)

__all__ = [
    "DeploymentPlan",
    "RollbackPlan",
    "plan_deployment",
    "plan_rollback",
    "plan_transition",
    "record_applied",
    "record_rolled_back",
]
