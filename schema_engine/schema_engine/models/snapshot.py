"""Snapshot models: a persisted schema state plus authoring metadata.

A snapshot is addressed by the hash of the :class:`~schema_engine.models.schema.Model`
its entities build into.  The source entity definitions are retained verbatim
so that humans can audit them and the model can be regenerated.  Snapshots are
immutable once saved.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.models.schema import Model


class SnapshotMetadata(BaseModel):
    """Authoring metadata.  Not part of the snapshot's content address."""

    model_config = ConfigDict(frozen=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the snapshot was created.",
    )
    created_by: str = Field(default="", description="User or process that created the snapshot.")
    description: str = Field(default="", description="Free-form description.")
    parent: str | None = Field(
        default=None,
        description="Hash of the snapshot this one was derived from (authoring tree, not the transition graph).",
    )
    merged_from: list[str] = Field(
        default_factory=list,
        description="Local and remote snapshot hashes when this snapshot is a three-way merge.",
    )


class Snapshot(BaseModel):
    """Point-in-time capture of a schema."""

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., min_length=1, description="SHA-256 hash of the snapshot's model.")
    entities: dict[str, Any] = Field(
        default_factory=dict,
        description="Source entity definitions exactly as authored.",
    )
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @property
    def parent(self) -> str | None:
        return self.metadata.parent

    def to_model(self) -> Model:
        """Rebuild the model from the retained entity definitions."""
        from schema_engine.builder.model_builder import entities_to_model

        return entities_to_model(self.entities)
