"""Dependency resolution, batch validation and field ordering.

A field is ready for a row when every declared dependency holds a value,
looked up first in the raw row and then in the enrichments already
computed for that row. Batch validation rejects graphs that could never
complete (unknown references, self-references, cycles) before any
extraction call is made.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..schemas.fields import FieldDefinition
from ..schemas.results import CellResult
from .exceptions import DependencyCycleError, FieldValidationError


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one field against one row."""

    ready: bool
    missing: list[str] = field(default_factory=list)


def has_value(value: Any) -> bool:
    """True for anything but None and empty/whitespace-only strings."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def enrichment_value(enrichment: Any) -> Any:
    """Unwrap a stored enrichment: CellResult, ``{"value": ...}`` dict, or bare value."""
    if isinstance(enrichment, CellResult):
        return enrichment.value
    if isinstance(enrichment, Mapping):
        return enrichment.get("value")
    return enrichment


def lookup_dependency(
    name: str,
    row: Mapping[str, Any],
    existing_enrichments: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Current value of *name* for a row, raw row first, then enrichments.

    Returns None when neither source holds a value.
    """
    raw = row.get(name)
    if has_value(raw):
        return raw
    if existing_enrichments and name in existing_enrichments:
        enriched = enrichment_value(existing_enrichments[name])
        if has_value(enriched):
            return enriched
    return None


class DependencyResolver:
    """Readiness checks and DAG validation for field definitions."""

    def resolve(
        self,
        field_def: FieldDefinition,
        row: Mapping[str, Any],
        existing_enrichments: Optional[Mapping[str, Any]] = None,
    ) -> Resolution:
        """Which declared dependencies of *field_def* are still unsatisfied.

        A field with no dependencies is always ready. Whether the field
        itself already holds a value is not considered here.
        """
        missing = [
            dep
            for dep in field_def.dependencies
            if lookup_dependency(dep, row, existing_enrichments) is None
        ]
        return Resolution(ready=not missing, missing=missing)

    def validate(
        self,
        fields: Sequence[FieldDefinition],
        known_columns: Optional[Iterable[str]] = (),
    ) -> None:
        """Reject a field set that can never be executed.

        Args:
            fields: Requested field definitions.
            known_columns: Input column names present in the batch. ``None``
                means the columns are unknown (an empty batch); references
                to names outside the requested fields are then accepted.

        Raises:
            FieldValidationError: Empty field list, duplicate names, or a
                dependency that is neither a requested field nor a column.
            DependencyCycleError: A field depends on itself, directly or
                through other requested fields.
        """
        if not fields:
            raise FieldValidationError("At least one field definition is required")

        names = [f.name for f in fields]
        seen: set[str] = set()
        dupes: list[str] = []
        for n in names:
            if n in seen and n not in dupes:
                dupes.append(n)
            seen.add(n)
        if dupes:
            raise FieldValidationError(
                f"Duplicate field names: {', '.join(dupes)}. Each field must have a unique name.",
                fields=dupes,
            )

        unknown: list[str] = []
        if known_columns is not None:
            known = set(names) | set(known_columns)
            unknown = [
                f"{f.name} -> {dep}" for f in fields for dep in f.dependencies if dep not in known
            ]
        if unknown:
            raise FieldValidationError(
                f"Unknown dependency references: {', '.join(unknown)}",
                fields=sorted({u.split(' -> ')[0] for u in unknown}),
            )

        cycle = _find_cycle(fields)
        if cycle:
            raise DependencyCycleError(cycle)

    def processing_order(self, fields: Sequence[FieldDefinition]) -> list[FieldDefinition]:
        """Flatten :meth:`execution_levels` into a single field order."""
        by_name = {f.name: f for f in fields}
        return [by_name[name] for level in self.execution_levels(fields) for name in level]

    def execution_levels(self, fields: Sequence[FieldDefinition]) -> list[list[str]]:
        """Kahn's algorithm returning grouped levels.

        Level 0 holds fields that depend only on raw input columns; each
        later level depends on fields of earlier ones. Request order is
        kept inside a level. Assumes :meth:`validate` has passed.
        """
        requested = {f.name for f in fields}
        in_degree: dict[str, int] = {
            f.name: len({d for d in f.dependencies if d in requested}) for f in fields
        }
        dependents: dict[str, list[str]] = {f.name: [] for f in fields}
        for f in fields:
            for dep in dict.fromkeys(f.dependencies):
                if dep in requested:
                    dependents[dep].append(f.name)

        position = {f.name: i for i, f in enumerate(fields)}
        current_level = [f.name for f in fields if in_degree[f.name] == 0]
        levels: list[list[str]] = []
        processed = 0

        while current_level:
            levels.append(current_level)
            processed += len(current_level)
            next_level: list[str] = []
            for name in current_level:
                for dependent in dependents[name]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_level.append(dependent)
            current_level = sorted(next_level, key=position.__getitem__)

        if processed != len(fields):
            remaining = [f.name for f in fields if in_degree[f.name] > 0]
            raise DependencyCycleError(_find_cycle(fields) or remaining)

        return levels


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------

_WHITE, _GREY, _BLACK = 0, 1, 2


def _find_cycle(fields: Sequence[FieldDefinition]) -> list[str] | None:
    """DFS with three-colour marking; returns the first cycle as a closed path."""
    graph = {f.name: [d for d in f.dependencies] for f in fields}
    colour = {name: _WHITE for name in graph}

    for start in graph:
        if colour[start] != _WHITE:
            continue
        # iterative DFS: stack of (node, iterator over its dependencies)
        path: list[str] = [start]
        stack = [(start, iter(graph[start]))]
        colour[start] = _GREY
        while stack:
            node, deps = stack[-1]
            advanced = False
            for dep in deps:
                if dep not in graph:
                    continue  # raw input column
                if colour[dep] == _GREY:
                    return path[path.index(dep):] + [dep]
                if colour[dep] == _WHITE:
                    colour[dep] = _GREY
                    path.append(dep)
                    stack.append((dep, iter(graph[dep])))
                    advanced = True
                    break
            if not advanced:
                colour[node] = _BLACK
                path.pop()
                stack.pop()
    return None
