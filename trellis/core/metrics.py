"""Per-session metrics rollup.

Metrics are derived data: they can be recomputed at any time from the full
result set, and stores persist them only as a cache.
"""

from __future__ import annotations

from typing import Iterable

from ..schemas.results import Metrics, RowResult, RowStatus
from .dependencies import has_value


def aggregate_metrics(results: Iterable[RowResult]) -> Metrics:
    """Roll up a result set.

    - ``missing_fields[field]`` counts cells whose value is None or an empty
      string, whatever the reason (missing dependency, empty extraction,
      errored cell).
    - ``average_confidence`` is the mean over every cell carrying a numeric
      confidence; 0.0 when there is none.
    - ``error_count`` counts rows whose status is ``error``. Errored cells in
      a ``partial`` row do not count.
    """
    total_confidence = 0.0
    confidence_count = 0
    missing_fields: dict[str, int] = {}
    error_count = 0

    for result in results:
        if result.status == RowStatus.ERROR:
            error_count += 1
        for field_name, cell in result.enrichments.items():
            if not has_value(cell.value):
                missing_fields[field_name] = missing_fields.get(field_name, 0) + 1
            if cell.confidence is not None:
                total_confidence += cell.confidence
                confidence_count += 1

    average_confidence = total_confidence / confidence_count if confidence_count > 0 else 0.0
    return Metrics(
        average_confidence=average_confidence,
        missing_fields=missing_fields,
        error_count=error_count,
    )
