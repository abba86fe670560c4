"""Three-way merge models.

A :class:`MergeResult` carries either the merged entity definitions or the
conflicts that kept the two branches from merging, never both.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConflictType(str, Enum):
    """Why two branches could not be merged automatically."""

    FIELD_REMOVED_BUT_USED = "field_removed_but_used"
    FIELD_TYPE_MISMATCH = "field_type_mismatch"
    FIELD_REQUIRED_MISMATCH = "field_required_mismatch"
    ENTITY_REMOVED_BUT_USED = "entity_removed_but_used"
    AMBIGUOUS_CHANGE = "ambiguous_change"


class Conflict(BaseModel):
    """One entity or field both branches changed incompatibly."""

    model_config = ConfigDict(frozen=True)

    type: ConflictType
    entity: str = Field(..., description="Entity name the conflict is in.")
    field: str | None = Field(default=None, description="Field name, for field-level conflicts.")
    description: str = Field(..., description="Human-readable explanation.")
    local_change: str = Field(..., description="What the local branch did, e.g. 'removed' or 'type: text'.")
    remote_change: str = Field(..., description="What the remote branch did.")

    @property
    def location(self) -> str:
        return f"{self.entity}.{self.field}" if self.field else self.entity


class MergeResult(BaseModel):
    """Outcome of merging a local and a remote branch against their common base."""

    model_config = ConfigDict(frozen=True)

    merged: dict[str, Any] | None = Field(
        default=None,
        description="Merged entity definitions; None when there are conflicts.",
    )
    conflicts: list[Conflict] = Field(default_factory=list)

    @property
    def can_auto_merge(self) -> bool:
        return not self.conflicts

    @property
    def success(self) -> bool:
        return self.merged is not None
