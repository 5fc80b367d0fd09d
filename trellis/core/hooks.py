"""Row events and lifecycle hooks for batch observability.

``RowCompleteEvent`` is what the orchestrator's stream yields, one per
completed row. ``EnrichmentHooks`` is an optional callback container fired
alongside the stream; ``_fire_hook`` logs hook errors and never lets one reach the batch.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from ..schemas.results import Metrics, RowResult
    from .config import EnrichmentConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchStartEvent:
    """Fired once after validation, before the first row starts."""

    field_names: list[str]
    num_rows: int
    config: EnrichmentConfig


@dataclass(frozen=True)
class RowCompleteEvent:
    """Emitted once per completed row; completion order is not row order."""

    row_index: int
    result: RowResult

    @property
    def cell_results(self) -> dict[str, Any]:
        return self.result.enrichments

    def to_dict(self) -> dict[str, Any]:
        """Wire shape for streaming consumers (e.g. server-sent events)."""
        return {
            "type": "row_complete",
            "rowIndex": self.row_index,
            "cellResults": {
                name: cell.model_dump(mode="json") for name, cell in self.result.enrichments.items()
            },
        }


@dataclass(frozen=True)
class BatchEndEvent:
    """Fired once at the end of a batch (including on error or cancellation)."""

    num_rows: int
    rows_completed: int
    cancelled: bool
    elapsed_seconds: float
    metrics: Optional[Metrics] = None


# ---------------------------------------------------------------------------
# EnrichmentHooks container
# ---------------------------------------------------------------------------


@dataclass
class EnrichmentHooks:
    """User-facing hook container — pass to ``RowOrchestrator``.

    All fields are optional callables. Sync and async callables both work.
    Hook errors are caught and logged; they never crash the batch.
    """

    on_batch_start: Optional[Callable[[BatchStartEvent], Any]] = None
    on_row_complete: Optional[Callable[[RowCompleteEvent], Any]] = None
    on_batch_end: Optional[Callable[[BatchEndEvent], Any]] = None


# ---------------------------------------------------------------------------
# Fire helper
# ---------------------------------------------------------------------------


async def _fire_hook(hook: Optional[Callable], event: Any) -> None:
    """Call *hook* with *event*, awaiting if async; errors are logged, not raised."""
    if hook is None:
        return
    try:
        result = hook(event)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Hook %s raised an exception", hook, exc_info=True)
