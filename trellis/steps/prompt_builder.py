"""Per-cell directive builder for the extraction client.

Assembles one directive for a (row, field) cell in a fixed section order:

  1. Cell identity (1-based row number, display name and key)
  2. Instructions (session-global and field-specific)
  3. Row context (sibling fields, capped)
  4. Dependency map
  5. Neighbor pattern map (same column in adjacent rows)
  6. Closing instruction

Every section after the identity line is always present and states its own
emptiness, so directives for similar cells have the same shape and can be
diffed in regression tests. The builder is pure: identical inputs give
byte-identical output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from ..core.dependencies import has_value, lookup_dependency
from ..schemas.fields import ContextConfig, FieldDefinition

MAX_CONTEXT_FIELDS = 12

MISSING_MARKER = "<missing>"

CLOSING_INSTRUCTION = (
    "Use the provided context when forming your answer. "
    "If a dependency is missing, return null."
)


@dataclass
class PromptPlan:
    """Directive for one cell plus the dependencies it could not resolve."""

    field: FieldDefinition
    row_index: int
    directive: str
    missing_dependencies: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field.model_dump(by_alias=True),
            "rowIndex": self.row_index,
            "systemDirective": self.directive,
            "missingDependencies": list(self.missing_dependencies),
        }


def build_plan(
    field_def: FieldDefinition,
    row: Mapping[str, Any],
    row_index: int,
    all_rows: Sequence[Mapping[str, Any]],
    existing_enrichments: Optional[Mapping[str, Any]] = None,
    context: Optional[ContextConfig] = None,
) -> PromptPlan:
    """Build the extraction directive for one cell.

    Args:
        field_def: Field being enriched.
        row: Current values of the row (raw input plus attached results).
        row_index: 0-based position of the row in the batch.
        all_rows: The whole batch, used for neighbor pattern hints.
        existing_enrichments: Results already computed for this row.
        context: Optional prompt context (labels, instruction overrides).

    Returns:
        A :class:`PromptPlan`; ``missing_dependencies`` lists declared
        dependencies with no value from either source.
    """
    context = context or ContextConfig()

    dependency_section, missing = _build_dependency_section(field_def, row, existing_enrichments)

    sections = [
        _build_identity(field_def, row_index),
        _build_instructions(field_def, context),
        _build_row_context(field_def, row, context),
        dependency_section,
        _build_neighbor_patterns(field_def, row_index, all_rows),
        CLOSING_INSTRUCTION,
    ]

    return PromptPlan(
        field=field_def,
        row_index=row_index,
        directive="\n\n".join(sections),
        missing_dependencies=missing,
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _build_identity(field_def: FieldDefinition, row_index: int) -> str:
    return (
        f'You are enriching cell Row {row_index + 1}, '
        f'Column "{field_def.display_name}" (key: {field_def.name}).'
    )


def _build_instructions(field_def: FieldDefinition, context: ContextConfig) -> str:
    global_text = (context.global_instructions or "").strip() or "none provided"
    field_text = (context.instructions_for(field_def) or "").strip() or "none provided"
    return (
        f"Global instructions: {global_text}\n"
        f"Custom instructions for {field_def.display_name}: {field_text}"
    )


def _build_row_context(
    field_def: FieldDefinition,
    row: Mapping[str, Any],
    context: ContextConfig,
) -> str:
    entries = [
        f"{context.label_for(key)}: {_render(value)}"
        for key, value in row.items()
        if key != field_def.name
    ][:MAX_CONTEXT_FIELDS]

    if not entries:
        return "Row context (other fields): No additional context available"
    return "Row context (other fields):\n" + "\n".join(entries)


def _build_dependency_section(
    field_def: FieldDefinition,
    row: Mapping[str, Any],
    existing_enrichments: Optional[Mapping[str, Any]],
) -> tuple[str, list[str]]:
    if not field_def.dependencies:
        return "Dependency map: none declared", []

    missing: list[str] = []
    details: list[str] = []
    for dep in field_def.dependencies:
        value = lookup_dependency(dep, row, existing_enrichments)
        if value is None:
            missing.append(dep)
            details.append(f"{dep}: {MISSING_MARKER}")
        else:
            details.append(f"{dep}: {_render(value)}")

    return f"Dependency map: {'; '.join(details)}", missing


def _build_neighbor_patterns(
    field_def: FieldDefinition,
    row_index: int,
    all_rows: Sequence[Mapping[str, Any]],
) -> str:
    window = field_def.window
    entries: list[str] = []

    for offset in range(-window, window + 1):
        neighbor_index = row_index + offset
        if offset == 0 or neighbor_index < 0 or neighbor_index >= len(all_rows):
            continue
        value = all_rows[neighbor_index].get(field_def.name)
        label = f"Row {neighbor_index + 1}"
        if has_value(value):
            entries.append(f"{label}: {_render(value)}")
        else:
            entries.append(f"{label}: (no value for {field_def.name})")

    if not entries:
        return "Neighbor pattern map: No adjacent records available"
    return f"Neighbor pattern map for {field_def.display_name}:\n" + "\n".join(entries)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _render(value: Any) -> str:
    """Cell value as prompt text; absent values read as ``unknown``."""
    if not has_value(value):
        return "unknown"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)
