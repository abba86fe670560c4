"""Per-environment deployment state: the only mutable record in the engine."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class EnvironmentState(BaseModel):
    """Which snapshot an environment currently runs.

    Updated only after a transition's SQL has been confirmed applied, so a
    failure mid-path leaves the state at the last applied snapshot.
    """

    environment: str = Field(..., min_length=1, description="Environment name, e.g. 'staging'.")
    current_snapshot: str | None = Field(default=None, description="Hash of the applied snapshot, if any.")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp of the last update.",
    )
