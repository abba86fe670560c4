"""Transition models: a persisted, ordered step list between two snapshots.

A transition is a directed edge ``from_hash -> to_hash`` in the schema graph.
Its own ``hash`` covers ``from_hash``, ``to_hash`` and ``steps`` only, so two
transitions describing the same change share an address regardless of when or
by whom they were created.  An empty ``from_hash`` means "from nothing".
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.hashing import content_hash
from schema_engine.models.schema import Model
from schema_engine.models.steps import MigrationStep

EMPTY_HASH = ""


def compute_transition_hash(from_hash: str, to_hash: str, steps: list[MigrationStep]) -> str:
    """Content address of a transition."""
    return content_hash({"from_hash": from_hash, "to_hash": to_hash, "steps": list(steps)})


class TransitionMetadata(BaseModel):
    """Descriptive metadata.  Not part of the transition's content address."""

    model_config = ConfigDict(frozen=True)

    description: str = Field(default="", description="Free-form description.")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Creation timestamp; used for deterministic tie-breaking in path finding.",
    )
    pre_image: Model | None = Field(
        default=None,
        description=(
            "Model the steps were generated against.  When present, drop and "
            "modify steps can be reversed from it."
        ),
    )


class Transition(BaseModel):
    """An immutable edge in the schema graph."""

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., min_length=1, description="Content hash of from_hash, to_hash and steps.")
    from_hash: str = Field(default=EMPTY_HASH, description="Source snapshot hash, empty for the first migration.")
    to_hash: str = Field(..., min_length=1, description="Target snapshot hash.")
    steps: list[MigrationStep] = Field(default_factory=list, description="Ordered migration steps.")
    metadata: TransitionMetadata = Field(default_factory=TransitionMetadata)

    def expected_hash(self) -> str:
        return compute_transition_hash(self.from_hash, self.to_hash, self.steps)

    @property
    def is_initial(self) -> bool:
        return self.from_hash == EMPTY_HASH
