"""Pydantic schemas for enrichment inputs, results and session state.

- FieldDefinition / ContextConfig: what to enrich and how to phrase it
- ExtractionResult: what the extraction provider returns
- CellResult / RowResult: what is stored per cell and per row
- Session / Metrics: persisted run state and its rollup

Example:
    from trellis.schemas import FieldDefinition

    industry = FieldDefinition(
        name="industry",
        dependencies=["company_name"],
        instructions="Use a single GICS sector name",
    )
"""

from .fields import (
    DEFAULT_CONTEXT_CONFIG,
    ContextConfig,
    FieldDefinition,
    humanize,
)
from .results import (
    DEFAULT_CONFIDENCE,
    CellResult,
    ExtractionResult,
    Metrics,
    RowResult,
    RowStatus,
    Session,
    SessionStatus,
)

__all__ = [
    "DEFAULT_CONFIDENCE",
    "DEFAULT_CONTEXT_CONFIG",
    "CellResult",
    "ContextConfig",
    "ExtractionResult",
    "FieldDefinition",
    "Metrics",
    "RowResult",
    "RowStatus",
    "Session",
    "SessionStatus",
    "humanize",
]
