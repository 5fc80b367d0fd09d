"""SessionRunner — ties one orchestrator batch to a persisted session."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import TYPE_CHECKING, AsyncIterator, Optional, Sequence

from ..schemas.fields import FieldDefinition
from ..schemas.results import Metrics, Session, SessionStatus
from .exceptions import SessionNotFoundError
from .hooks import RowCompleteEvent
from .metrics import aggregate_metrics
from .orchestrator import RowOrchestrator, RowsInput, _frame_columns, _to_rows

if TYPE_CHECKING:
    from ..storage.base import SessionStore

logger = logging.getLogger(__name__)


class SessionRunner:
    """Runs a batch and records it in a :class:`SessionStore`.

    Lifecycle: validate, create the session (``pending``), mark it
    ``running``, persist every row result as it completes and bump
    ``processed_rows``, then recompute metrics from the full stored result
    set and mark the session ``completed``. A cancelled batch ends
    ``failed``; any error also marks it ``failed`` and propagates.
    """

    def __init__(self, orchestrator: RowOrchestrator, store: SessionStore):
        self.orchestrator = orchestrator
        self.store = store

    async def stream(
        self,
        data: RowsInput,
        fields: Sequence[FieldDefinition],
        session_id: Optional[str] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[RowCompleteEvent]:
        """Yield row events while persisting them.

        Nothing is written when the field set fails validation.
        """
        rows = _to_rows(data)
        fields = list(fields)
        self.orchestrator.validate(rows, fields, columns=_frame_columns(data))

        session = self.store.create_session(len(rows), session_id=session_id)
        self.store.update_status(session.id, SessionStatus.RUNNING)

        try:
            async with aclosing(self.orchestrator.stream(rows, fields, cancel_event)) as events:
                async for event in events:
                    self.store.save_row_result(session.id, event.result)
                    self.store.increment_processed(session.id)
                    yield event
        except BaseException:
            logger.exception("Session %s failed", session.id)
            self.store.update_status(session.id, SessionStatus.FAILED)
            raise

        if cancel_event is not None and cancel_event.is_set():
            logger.info("Session %s cancelled", session.id)
            self.store.update_status(session.id, SessionStatus.FAILED)
            return

        self.recompute_metrics(session.id)
        self.store.update_status(session.id, SessionStatus.COMPLETED)

    async def run(
        self,
        data: RowsInput,
        fields: Sequence[FieldDefinition],
        session_id: Optional[str] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Session:
        """Drain :meth:`stream` and return the final session state."""
        session_id = session_id or uuid.uuid4().hex
        async for _ in self.stream(data, fields, session_id=session_id, cancel_event=cancel_event):
            pass
        session = self.store.get_session_metadata(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def recompute_metrics(self, session_id: str) -> Metrics:
        """Rebuild and cache the metrics of *session_id* from its stored results."""
        if self.store.get_session_metadata(session_id) is None:
            raise SessionNotFoundError(session_id)
        metrics = aggregate_metrics(self.store.get_session_results(session_id))
        self.store.save_metrics(session_id, metrics)
        logger.info(
            "Session %s metrics: avg confidence %.2f, %d error rows",
            session_id, metrics.average_confidence, metrics.error_count,
        )
        return metrics
