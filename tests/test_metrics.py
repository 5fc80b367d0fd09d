"""Tests for the metrics rollup."""

from __future__ import annotations

import pytest

from trellis.core.metrics import aggregate_metrics
from trellis.schemas import CellResult, RowResult, RowStatus


def _row(index: int, status: RowStatus = RowStatus.SUCCESS, **cells: CellResult) -> RowResult:
    return RowResult(row_index=index, enrichments=cells, status=status)


RESULTS = [
    _row(0, industry=CellResult(value="Tech", confidence=0.9), website=CellResult(value="", confidence=0.4)),
    _row(1, industry=CellResult.missing(["company_name"]), website=CellResult(value="a.co", confidence=0.8)),
    _row(
        2,
        RowStatus.PARTIAL,
        industry=CellResult(value="Retail", confidence=0.7),
        website=CellResult.failed("timeout"),
    ),
    _row(3, RowStatus.ERROR, industry=CellResult.failed("x"), website=CellResult.failed("y")),
]


class TestAggregateMetrics:
    def test_empty(self):
        metrics = aggregate_metrics([])
        assert metrics.average_confidence == 0.0
        assert metrics.missing_fields == {}
        assert metrics.error_count == 0

    def test_missing_fields(self):
        metrics = aggregate_metrics(RESULTS)
        assert metrics.missing_fields == {"website": 3, "industry": 2}

    def test_average_over_numeric_confidences(self):
        metrics = aggregate_metrics(RESULTS)
        # Errored cells carry no confidence; null-filled cells count as 0.0
        expected = (0.9 + 0.4 + 0.0 + 0.8 + 0.7) / 5
        assert metrics.average_confidence == pytest.approx(expected)

    def test_only_error_rows_counted(self):
        assert aggregate_metrics(RESULTS).error_count == 1

    def test_idempotent(self):
        assert aggregate_metrics(RESULTS) == aggregate_metrics(RESULTS)

    def test_accepts_generator(self):
        metrics = aggregate_metrics(r for r in RESULTS)
        assert metrics.error_count == 1
