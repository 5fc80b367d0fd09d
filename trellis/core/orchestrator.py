"""RowOrchestrator — dependency-ordered, concurrency-bounded row enrichment."""

from __future__ import annotations

import asyncio
import logging
import random
import time as _time
from typing import Any, AsyncIterator, Optional, Sequence, Union

import pandas as pd
from tqdm.auto import tqdm

from ..providers.base import ExtractionAPIError, ExtractionClient
from ..schemas.fields import ContextConfig, FieldDefinition
from ..schemas.results import CellResult, RowResult, RowStatus
from ..steps.prompt_builder import PromptPlan, build_plan
from .config import EnrichmentConfig
from .dependencies import DependencyResolver, has_value
from .hooks import (
    BatchEndEvent,
    BatchStartEvent,
    EnrichmentHooks,
    RowCompleteEvent,
    _fire_hook,
)
from .metrics import aggregate_metrics

logger = logging.getLogger(__name__)

RowsInput = Union[pd.DataFrame, Sequence[dict[str, Any]]]


class RowOrchestrator:
    """Drives a batch of rows through a set of field definitions.

    Validation runs before anything else: a field set with unknown
    references or cycles raises without a single extraction call. Rows then
    run concurrently (bounded by ``config.max_workers``); inside a row,
    fields run one at a time in dependency order. Each row ends as a
    :class:`RowCompleteEvent` on the stream, in completion order.
    """

    def __init__(
        self,
        client: ExtractionClient,
        config: EnrichmentConfig | None = None,
        context: ContextConfig | None = None,
        hooks: EnrichmentHooks | None = None,
        resolver: DependencyResolver | None = None,
    ):
        """Create an orchestrator.

        Args:
            client: Extraction provider called once per (row, field) attempt.
            config: Concurrency, retry and quality settings.
            context: Prompt context shared by every cell of the batch.
            hooks: Optional lifecycle callbacks fired alongside the stream.
            resolver: Dependency resolver (a default one is created).
        """
        self.client = client
        self.config = config or EnrichmentConfig()
        self.context = context or ContextConfig()
        self.hooks = hooks or EnrichmentHooks()
        self.resolver = resolver or DependencyResolver()

    # -- validation ------------------------------------------------------

    def validate(
        self,
        rows: Sequence[dict[str, Any]],
        fields: Sequence[FieldDefinition],
        columns: Optional[Sequence[str]] = None,
    ) -> list[FieldDefinition]:
        """Validate the batch and return fields in processing order.

        Input columns are *columns* when given, else the keys found in
        *rows*. With neither, references to raw columns are not checked.

        Raises:
            FieldValidationError: Unknown references, duplicates or cycles.
        """
        known_columns = _input_columns(rows, columns)
        self.resolver.validate(fields, known_columns)
        return self.resolver.processing_order(fields)

    # -- primary API -----------------------------------------------------

    def run(self, data: RowsInput, fields: Sequence[FieldDefinition]) -> list[RowResult]:
        """Synchronous entry point.

        Raises ``RuntimeError`` if called from inside a running event loop
        (use ``await orchestrator.enrich_rows(...)`` in that case).
        """
        try:
            asyncio.get_running_loop()
            raise RuntimeError(
                "RowOrchestrator.run() cannot be called from inside an async context. "
                "Use 'await orchestrator.enrich_rows(...)' instead."
            )
        except RuntimeError as exc:
            if "enrich_rows" in str(exc):
                raise
        return asyncio.run(self.enrich_rows(data, fields))

    async def enrich_rows(
        self,
        data: RowsInput,
        fields: Sequence[FieldDefinition],
        cancel_event: asyncio.Event | None = None,
    ) -> list[RowResult]:
        """Enrich a whole batch and return results sorted by row index."""
        results = [event.result async for event in self.stream(data, fields, cancel_event)]
        return sorted(results, key=lambda r: r.row_index)

    async def enrich_row(
        self,
        row: dict[str, Any],
        fields: Sequence[FieldDefinition],
        row_index: int = 0,
        all_rows: Sequence[dict[str, Any]] | None = None,
    ) -> RowResult:
        """Enrich a single row synchronously with respect to the caller.

        Args:
            row: The row to enrich.
            fields: Field definitions to compute.
            row_index: Position of the row within ``all_rows``.
            all_rows: Surrounding batch for neighbor hints; without it the
                directive carries no neighbor values.
        """
        neighbors = list(all_rows) if all_rows is not None else []
        ordered = self.validate([row, *neighbors], fields)
        # Without a cancel event a result is always produced
        return await self._enrich_row(dict(row), row_index, neighbors, ordered, None)

    async def stream(
        self,
        data: RowsInput,
        fields: Sequence[FieldDefinition],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[RowCompleteEvent]:
        """Yield one :class:`RowCompleteEvent` per completed row.

        Args:
            data: Rows as ``list[dict]`` or a DataFrame.
            fields: Field definitions to compute for every row.
            cancel_event: Set it to stop the batch. Rows not yet started are
                skipped; results of rows in flight are discarded.

        Raises:
            FieldValidationError: On the first iteration, before any
                extraction call, if the field set is invalid.
        """
        rows = _to_rows(data)
        fields = list(fields)
        ordered = self.validate(rows, fields, columns=_frame_columns(data))
        snapshot = [dict(r) for r in rows]
        num_rows = len(rows)

        logger.info(
            "Starting enrichment of %d rows for fields %s",
            num_rows, [f.name for f in ordered],
        )
        await _fire_hook(self.hooks.on_batch_start, BatchStartEvent(
            field_names=[f.name for f in ordered],
            num_rows=num_rows,
            config=self.config,
        ))

        semaphore = asyncio.Semaphore(self.config.max_workers)
        queue: asyncio.Queue = asyncio.Queue()

        async def worker(idx: int) -> None:
            try:
                result = await self._process_row(
                    idx, snapshot, ordered, semaphore, cancel_event,
                )
            except Exception as exc:
                await queue.put((idx, None, exc))
            else:
                await queue.put((idx, result, None))

        batch_start = _time.monotonic()
        tasks = [asyncio.create_task(worker(idx)) for idx in range(num_rows)]
        progress_bar = tqdm(
            total=num_rows,
            desc="Enriching rows",
            unit="row",
            disable=not self.config.enable_progress_bar,
        )
        completed: list[RowResult] = []

        try:
            for _ in range(num_rows):
                idx, result, exc = await queue.get()
                progress_bar.update(1)
                if exc is not None:
                    raise exc
                if result is None:
                    logger.debug("Row %d discarded after cancellation", idx)
                    continue

                completed.append(result)
                event = RowCompleteEvent(row_index=idx, result=result)
                await _fire_hook(self.hooks.on_row_complete, event)
                yield event
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            progress_bar.close()

            cancelled = cancel_event is not None and cancel_event.is_set()
            elapsed = _time.monotonic() - batch_start
            logger.info(
                "Enrichment finished: %d/%d rows completed in %.1fs%s",
                len(completed), num_rows, elapsed, " (cancelled)" if cancelled else "",
            )
            await _fire_hook(self.hooks.on_batch_end, BatchEndEvent(
                num_rows=num_rows,
                rows_completed=len(completed),
                cancelled=cancelled,
                elapsed_seconds=elapsed,
                metrics=aggregate_metrics(completed),
            ))

    # -- execution -------------------------------------------------------

    async def _process_row(
        self,
        idx: int,
        all_rows: list[dict[str, Any]],
        ordered: list[FieldDefinition],
        semaphore: asyncio.Semaphore,
        cancel_event: asyncio.Event | None,
    ) -> Optional[RowResult]:
        """Run one row under the semaphore; None when cancelled."""
        async with semaphore:
            if _is_cancelled(cancel_event):
                return None

            result = await self._enrich_row(
                dict(all_rows[idx]), idx, all_rows, ordered, cancel_event,
            )
            if result is None or _is_cancelled(cancel_event):
                return None

            # Pacing between rows (provider rate limits)
            if self.config.row_delay > 0:
                await asyncio.sleep(self.config.row_delay)

            return result

    async def _enrich_row(
        self,
        row: dict[str, Any],
        row_index: int,
        all_rows: Sequence[dict[str, Any]],
        ordered: list[FieldDefinition],
        cancel_event: asyncio.Event | None,
    ) -> Optional[RowResult]:
        """Compute every field of one row in dependency order.

        ``row`` is a working copy: successful values are attached to it as
        fields complete, so later fields see them as row context.
        """
        original = dict(row)
        enrichments: dict[str, CellResult] = {}

        for field_def in ordered:
            if _is_cancelled(cancel_event):
                return None

            existing = row.get(field_def.name)
            if not self.config.overwrite_fields and has_value(existing):
                enrichments[field_def.name] = CellResult(value=existing, confidence=1.0)
                continue

            plan = build_plan(
                field_def, row, row_index, all_rows, enrichments, self.context,
            )
            if plan.missing_dependencies:
                logger.debug(
                    "Row %d field '%s' missing dependencies %s; null-filling",
                    row_index, field_def.name, plan.missing_dependencies,
                )
                enrichments[field_def.name] = CellResult.missing(plan.missing_dependencies)
                continue

            cell = await self._extract_cell(plan, cancel_event)
            if cell is None:
                return None

            enrichments[field_def.name] = cell
            if not cell.is_error and has_value(cell.value):
                row[field_def.name] = cell.value

        status, error = _row_status(enrichments)
        return RowResult(
            row_index=row_index,
            original_data=original,
            enrichments=enrichments,
            status=status,
            error=error,
        )

    async def _extract_cell(
        self,
        plan: PromptPlan,
        cancel_event: asyncio.Event | None,
    ) -> Optional[CellResult]:
        """Call the provider with bounded retries; None when cancelled."""
        field_def = plan.field
        max_attempts = self.config.max_attempts
        last_error: BaseException | None = None

        for attempt in range(max_attempts):
            if _is_cancelled(cancel_event):
                return None
            try:
                extraction = await self.client.extract(plan.directive, field_def.type)
            except Exception as exc:
                last_error = exc
                if attempt < max_attempts - 1:
                    delay = self._backoff_delay(attempt, exc)
                    logger.warning(
                        "Extraction for row %d field '%s' failed (attempt %d/%d), "
                        "retrying in %.1fs: %s",
                        plan.row_index, field_def.name, attempt + 1, max_attempts, delay, exc,
                    )
                    await asyncio.sleep(delay)
                continue

            if _is_cancelled(cancel_event):
                return None
            return CellResult.from_extraction(extraction, self.config.confidence_threshold)

        logger.error(
            "Extraction for row %d field '%s' failed after %d attempts: %s",
            plan.row_index, field_def.name, max_attempts, last_error,
        )
        return CellResult.failed(f"{type(last_error).__name__}: {last_error}")

    def _backoff_delay(self, attempt: int, exc: BaseException) -> float:
        """Exponential backoff with jitter, honouring a provider Retry-After."""
        delay = self.config.retry_base_delay * (2 ** attempt)
        if isinstance(exc, ExtractionAPIError) and exc.retry_after is not None:
            delay = max(delay, exc.retry_after)
        # Add jitter (0-25% of delay)
        return delay + random.uniform(0, delay * 0.25)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _row_status(enrichments: dict[str, CellResult]) -> tuple[RowStatus, Optional[str]]:
    """``error`` only when every requested field errored; ``partial`` when some did."""
    failed = [name for name, cell in enrichments.items() if cell.is_error]
    if not failed:
        return RowStatus.SUCCESS, None
    message = f"Extraction failed for: {', '.join(failed)}"
    if len(failed) == len(enrichments):
        return RowStatus.ERROR, message
    return RowStatus.PARTIAL, message


def _to_rows(data: RowsInput) -> list[dict[str, Any]]:
    """Normalise input rows; DataFrame NaN cells become empty strings."""
    if isinstance(data, pd.DataFrame):
        cleaned = data.astype(object).where(pd.notna(data), "")
        return cleaned.to_dict(orient="records")
    return [dict(row) for row in data]


def _frame_columns(data: RowsInput) -> Optional[list[str]]:
    """Header of a DataFrame input, which survives even with zero rows."""
    if isinstance(data, pd.DataFrame):
        return [str(c) for c in data.columns]
    return None


def _input_columns(
    rows: Sequence[dict[str, Any]],
    columns: Optional[Sequence[str]],
) -> Optional[set[str]]:
    if columns is not None:
        return set(columns)
    if not rows:
        return None
    return {key for row in rows for key in row}
