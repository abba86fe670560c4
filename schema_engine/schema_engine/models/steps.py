"""Migration step models.

A migration step is one atomic schema change.  Steps form a tagged union
discriminated on ``type``; each variant carries exactly the payload an
external SQL generator needs, so no step ever has to consult the diff it came
from.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from schema_engine.models.schema import Column, ColumnDefault, ForeignKey, Index


class StepType(str, Enum):
    """All step tags, in the order the generator emits their phases."""

    DROP_FOREIGN_KEY = "drop_foreign_key"
    DROP_INDEX = "drop_index"
    RENAME_COLUMN = "rename_column"
    DROP_COLUMN = "drop_column"
    DROP_TABLE = "drop_table"
    ADD_TABLE = "add_table"
    ADD_COLUMN = "add_column"
    MODIFY_COLUMN = "modify_column"
    ADD_INDEX = "add_index"
    ADD_FOREIGN_KEY = "add_foreign_key"


ADDITIVE_STEP_TYPES: frozenset[str] = frozenset(
    {
        StepType.ADD_TABLE.value,
        StepType.ADD_COLUMN.value,
        StepType.ADD_INDEX.value,
        StepType.ADD_FOREIGN_KEY.value,
    }
)


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1, description="Table the step operates on.")


class AddTableStep(_StepBase):
    """Create a table with its columns.  Indexes and FKs are separate steps."""

    type: Literal["add_table"] = "add_table"
    columns: list[Column] = Field(..., min_length=1, description="Column definitions, primary key first.")

    @property
    def primary_key(self) -> list[str]:
        return [c.name for c in self.columns if c.primary]


class DropTableStep(_StepBase):
    type: Literal["drop_table"] = "drop_table"


class AddColumnStep(_StepBase):
    type: Literal["add_column"] = "add_column"
    column: Column


class DropColumnStep(_StepBase):
    type: Literal["drop_column"] = "drop_column"
    column: str


class RenameColumnStep(_StepBase):
    type: Literal["rename_column"] = "rename_column"
    column: str
    new_name: str


class ColumnChanges(BaseModel):
    """Target values for the attributes a ``modify_column`` step changes.

    ``None`` means "unchanged".  Removing a default is expressed with
    ``drop_default`` because ``default=None`` already means unchanged.
    """

    model_config = ConfigDict(frozen=True)

    type: str | None = None
    nullable: bool | None = None
    default: ColumnDefault | None = None
    drop_default: bool = False
    primary: bool | None = None
    generated: bool | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.type is None
            and self.nullable is None
            and self.default is None
            and not self.drop_default
            and self.primary is None
            and self.generated is None
        )


class ModifyColumnStep(_StepBase):
    type: Literal["modify_column"] = "modify_column"
    column: str
    changes: ColumnChanges


class AddIndexStep(_StepBase):
    type: Literal["add_index"] = "add_index"
    index: Index


class DropIndexStep(_StepBase):
    type: Literal["drop_index"] = "drop_index"
    index: str


class AddForeignKeyStep(_StepBase):
    type: Literal["add_foreign_key"] = "add_foreign_key"
    foreign_key: ForeignKey


class DropForeignKeyStep(_StepBase):
    type: Literal["drop_foreign_key"] = "drop_foreign_key"
    foreign_key: str


MigrationStep = Annotated[
    Union[
        AddTableStep,
        DropTableStep,
        AddColumnStep,
        DropColumnStep,
        RenameColumnStep,
        ModifyColumnStep,
        AddIndexStep,
        DropIndexStep,
        AddForeignKeyStep,
        DropForeignKeyStep,
    ],
    Field(discriminator="type"),
]

STEP_LIST_ADAPTER: TypeAdapter[list[MigrationStep]] = TypeAdapter(list[MigrationStep])


def parse_steps(raw: list[dict]) -> list[MigrationStep]:
    """Validate a list of raw step dicts into typed steps."""
    return STEP_LIST_ADAPTER.validate_python(raw)


def step_target(step: MigrationStep) -> str:
    """Human-readable ``table.object`` label for a step."""
    if isinstance(step, AddColumnStep):
        return f"{step.table}.{step.column.name}"
    if isinstance(step, (DropColumnStep, ModifyColumnStep, RenameColumnStep)):
        return f"{step.table}.{step.column}"
    if isinstance(step, AddIndexStep):
        return f"{step.table}.{step.index.name}"
    if isinstance(step, DropIndexStep):
        return f"{step.table}.{step.index}"
    if isinstance(step, AddForeignKeyStep):
        return f"{step.table}.{step.foreign_key.name}"
    if isinstance(step, DropForeignKeyStep):
        return f"{step.table}.{step.foreign_key}"
    return step.table
