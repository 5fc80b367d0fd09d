"""FieldDefinition and ContextConfig — the static inputs of an enrichment run."""

from __future__ import annotations

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VALID_TYPES = Literal["String", "Number", "Boolean", "Date", "List[String]", "JSON"]

DEFAULT_NEIGHBOR_WINDOW = 1

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def humanize(name: str) -> str:
    """Turn a raw column key into a readable label.

    ``company_name`` → ``Company Name``, ``linkedinUrl`` → ``Linkedin Url``,
    ``_name`` → ``Name``.
    """
    spaced = _CAMEL_BOUNDARY.sub(" ", name)
    words = re.split(r"[\s_\-]+", spaced)
    return " ".join(w[:1].upper() + w[1:] for w in words if w)


class FieldDefinition(BaseModel):
    """Static description of one enrichable column.

    Frozen once constructed; a session never changes its field list.
    Unknown keys are rejected (``extra="forbid"``). The camelCase wire names
    ``displayName``, ``promptTemplate`` and ``adjacentWindow`` are accepted
    as aliases so remote callers can send the payload shape they already use.

    Attributes:
        name: Unique key of the field (also the output column name).
        display_name: Human label; defaults to the humanized ``name``.
        description: Optional free-text description of the field.
        type: Expected value shape handed to the extraction client.
        dependencies: Names of fields/columns that must hold a value first.
        instructions: Optional field-specific instruction text.
        neighbor_window: Rows before/after surfaced as pattern hints
            (``None`` means the default of 1).
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: str
    display_name: str = Field(default="", alias="displayName")
    description: Optional[str] = None
    type: VALID_TYPES = "String"
    dependencies: list[str] = Field(default_factory=list)
    instructions: Optional[str] = Field(default=None, alias="promptTemplate")
    neighbor_window: Optional[int] = Field(default=None, ge=0, alias="adjacentWindow")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @model_validator(mode="before")
    @classmethod
    def default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("display_name") or data.get("displayName")):
            name = data.get("name")
            if isinstance(name, str) and name.strip():
                data = {**data, "displayName": humanize(name.strip())}
                data.pop("display_name", None)
        return data

    @property
    def window(self) -> int:
        """Effective neighbor window."""
        if self.neighbor_window is None:
            return DEFAULT_NEIGHBOR_WINDOW
        return self.neighbor_window


class ContextConfig(BaseModel):
    """Read-only prompt context supplied alongside a batch.

    Attributes:
        global_instructions: Instruction text applied to every cell.
        row_context_mappings: Raw column name → label used in row context.
        column_instructions: Field name → instruction override.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_instructions: Optional[str] = Field(default=None, alias="globalInstructions")
    row_context_mappings: dict[str, str] = Field(
        default_factory=dict, alias="rowContextMappings"
    )
    column_instructions: dict[str, str] = Field(
        default_factory=dict, alias="columnInstructions"
    )

    def label_for(self, column: str) -> str:
        return self.row_context_mappings.get(column) or humanize(column)

    def instructions_for(self, field: FieldDefinition) -> Optional[str]:
        """Field instruction: the column override wins over the field's own text."""
        return self.column_instructions.get(field.name) or field.instructions


DEFAULT_CONTEXT_CONFIG = ContextConfig(
    global_instructions="Extract lead enrichment details using email as the primary identifier.",
    row_context_mappings={"email": "Email", "_name": "Person Name"},
)
