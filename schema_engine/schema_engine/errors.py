"""Error taxonomy for the schema evolution engine.

Every error here is local and recoverable: the engine raises, the caller
decides whether to abort, prompt, or retry.  The classes are deliberately
distinct so that callers can branch on the *kind* of failure:

* :class:`StructuralError` -- the input itself is malformed (bad entity
  definitions, unresolved references, invalid step application).
* :class:`NotFoundError` -- a hash is absent from the store.  Usually means a
  snapshot or transition was never generated.
* :class:`SchemaConflictError` -- two hashes exist but no recorded transition
  chain connects them.  Lineages diverged; manual reconciliation is needed.
* :class:`IrreversibleStepError` -- a rollback needs a pre-image that was not
  retained.
* :class:`StoreCorruptionError` -- a persisted record fails validation.
* :class:`MergeConflictError` -- two branches changed the same entity or
  field incompatibly.
"""

from __future__ import annotations

from typing import Any


class SchemaEngineError(Exception):
    """Base class for all schema engine errors."""


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


class StructuralError(SchemaEngineError):
    """Raised when entity definitions or steps are structurally invalid.

    Attributes
    ----------
    entity:
        Entity (or table) name the problem was found in, when known.
    field:
        Field (or column) name the problem was found in, when known.
    """

    def __init__(self, message: str, *, entity: str | None = None, field: str | None = None) -> None:
        self.entity = entity
        self.field = field
        location = ""
        if entity and field:
            location = f"{entity}.{field}: "
        elif entity:
            location = f"{entity}: "
        super().__init__(f"{location}{message}")


class CircularReferenceError(StructuralError):
    """Raised when resolving schema references loops back on itself."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"Circular reference detected: {' -> '.join(chain)}", entity=chain[0] if chain else None)


# ---------------------------------------------------------------------------
# Store lookups
# ---------------------------------------------------------------------------


class NotFoundError(SchemaEngineError):
    """Raised when a referenced hash is absent from the store."""

    kind = "record"

    def __init__(self, record_hash: str) -> None:
        self.hash = record_hash
        super().__init__(f"{self.kind.capitalize()} not found: {record_hash}")


class SnapshotNotFoundError(NotFoundError):
    kind = "snapshot"


class TransitionNotFoundError(NotFoundError):
    kind = "transition"


class StoreCorruptionError(SchemaEngineError):
    """Raised when a persisted record cannot be validated against its address."""

    def __init__(self, path: Any, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupted record at {path}: {reason}")


# ---------------------------------------------------------------------------
# Graph / rollback
# ---------------------------------------------------------------------------


class SchemaConflictError(SchemaEngineError):
    """Raised when no transition chain connects two snapshot hashes."""

    def __init__(self, from_hash: str, to_hash: str) -> None:
        self.from_hash = from_hash
        self.to_hash = to_hash
        source = from_hash[:8] if from_hash else "<empty>"
        super().__init__(
            f"No recorded transition path from {source} to {to_hash[:8]}. "
            "The schema lineages have diverged and need manual reconciliation."
        )


class IrreversibleStepError(SchemaEngineError):
    """Raised when steps cannot be reversed without their pre-change definitions.

    Attributes
    ----------
    steps:
        The steps that could not be reversed, in their original order.
    """

    def __init__(self, steps: list[Any]) -> None:
        self.steps = steps
        described = ", ".join(f"{s.type} {s.table}" for s in steps)
        super().__init__(f"{len(steps)} step(s) cannot be reversed without a pre-image: {described}")


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


class MergeConflictError(SchemaEngineError):
    """Raised when two branches of a schema cannot be merged automatically.

    Attributes
    ----------
    conflicts:
        The :class:`~schema_engine.models.merge.Conflict` records, in entity order.
    """

    def __init__(self, conflicts: list[Any]) -> None:
        self.conflicts = conflicts
        described = "; ".join(c.description for c in conflicts)
        super().__init__(f"{len(conflicts)} merge conflict(s): {described}")
