"""Result and session schemas.

Defines what the extraction client returns (``ExtractionResult``), what
is stored per cell and per row (``CellResult``, ``RowResult``), and the
persisted session state (``Session``, ``Metrics``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

# Confidence assumed when a provider returns a value without a score.
DEFAULT_CONFIDENCE = 0.5


class RowStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExtractionResult(BaseModel):
    """What an extraction client returns for one directive.

    Attributes:
        value: Extracted value (any JSON-compatible shape), or None.
        confidence: Score in [0, 1]; None when the provider gave none.
        sources: Evidence references (URLs, document ids, quotes).
    """

    value: Any = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    sources: list[str] = Field(default_factory=list)

    @field_validator("sources", mode="before")
    @classmethod
    def coerce_sources(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(s) for s in v]


class CellResult(BaseModel):
    """Stored outcome for one (row, field) cell.

    Either carries a value (possibly None) with a confidence, or an ``error``.
    ``missing_dependencies`` is set when the cell was null-filled without an
    extraction call; ``low_confidence`` flags values under the session
    threshold.
    """

    value: Any = None
    confidence: Optional[float] = None
    sources: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    low_confidence: bool = False
    missing_dependencies: list[str] = Field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def from_extraction(cls, result: ExtractionResult, threshold: float) -> CellResult:
        confidence = DEFAULT_CONFIDENCE if result.confidence is None else result.confidence
        return cls(
            value=result.value,
            confidence=confidence,
            sources=list(result.sources),
            low_confidence=confidence < threshold,
        )

    @classmethod
    def missing(cls, dependencies: list[str]) -> CellResult:
        return cls(value=None, confidence=0.0, missing_dependencies=list(dependencies))

    @classmethod
    def failed(cls, message: str) -> CellResult:
        return cls(error=message)


class RowResult(BaseModel):
    """All cell results for one row plus the row's original input fields."""

    row_index: int
    original_data: dict[str, Any] = Field(default_factory=dict)
    enrichments: dict[str, CellResult] = Field(default_factory=dict)
    status: RowStatus = RowStatus.SUCCESS
    error: Optional[str] = None


class Session(BaseModel):
    """One enrichment run, as persisted by a session store."""

    id: str
    total_rows: int = Field(ge=0)
    processed_rows: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.PENDING
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Metrics(BaseModel):
    """Per-session rollup derived from the full result set."""

    average_confidence: float = 0.0
    missing_fields: dict[str, int] = Field(default_factory=dict)
    error_count: int = 0
