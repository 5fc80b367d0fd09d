"""RelationalSessionStore — SQLAlchemy Core backend (PostgreSQL or SQLite).

Three tables: ``enrichment_sessions``, ``enrichment_results`` keyed by
``(session_id, row_index)`` and ``enrichment_metrics``. Row results and
metrics are stored as JSON (JSONB on PostgreSQL). Progress and status
changes are single conditional ``UPDATE`` statements, so concurrent writers
cannot overshoot ``total_rows`` or move a session backwards.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import (
    InvalidStatusTransitionError,
    SessionNotFoundError,
    StorageError,
)
from ..schemas.results import Metrics, RowResult, Session, SessionStatus
from .base import (
    SessionStore,
    check_transition,
    load_metrics,
    load_result,
    new_session_id,
    predecessors,
)

logger = logging.getLogger(__name__)

JSONDocument = JSON().with_variant(JSONB(), "postgresql")

metadata = MetaData()

sessions_table = Table(
    "enrichment_sessions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("total_rows", Integer, nullable=False),
    Column("processed_rows", Integer, nullable=False, default=0),
    Column("status", String(16), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
)

results_table = Table(
    "enrichment_results",
    metadata,
    Column("session_id", String(64), primary_key=True),
    Column("row_index", Integer, primary_key=True),
    Column("data", JSONDocument, nullable=False),
)

metrics_table = Table(
    "enrichment_metrics",
    metadata,
    Column("session_id", String(64), primary_key=True),
    Column("data", JSONDocument, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


class RelationalSessionStore(SessionStore):
    """Session store on a SQLAlchemy engine.

    Args:
        engine: Any SQLAlchemy engine. PostgreSQL in production; SQLite works
            for local runs and tests (use ``StaticPool`` for ``sqlite://``).
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_tables(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create tables: {exc}") from exc

    # -- sessions --------------------------------------------------------

    def create_session(self, total_rows: int, session_id: Optional[str] = None) -> Session:
        session = Session(id=session_id or new_session_id(), total_rows=total_rows)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    sessions_table.insert().values(
                        id=session.id,
                        total_rows=session.total_rows,
                        processed_rows=0,
                        status=session.status.value,
                        started_at=session.started_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create session '{session.id}': {exc}") from exc

        logger.info("Created session %s (%d rows)", session.id, total_rows)
        return session

    def increment_processed(self, session_id: str) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    sessions_table.update()
                    .where(sessions_table.c.id == session_id)
                    .where(sessions_table.c.processed_rows < sessions_table.c.total_rows)
                    .values(processed_rows=sessions_table.c.processed_rows + 1)
                )
                if result.rowcount == 0:
                    self._require_session(conn, session_id)
                    logger.warning(
                        "Session %s already at total_rows; increment ignored", session_id
                    )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to increment session '{session_id}': {exc}") from exc

    def update_status(self, session_id: str, status: SessionStatus) -> None:
        status = SessionStatus(status)
        try:
            with self.engine.begin() as conn:
                current = SessionStatus(self._require_session(conn, session_id)["status"])
                if not check_transition(session_id, current, status):
                    return
                result = conn.execute(
                    sessions_table.update()
                    .where(sessions_table.c.id == session_id)
                    .where(sessions_table.c.status.in_([s.value for s in predecessors(status)]))
                    .values(status=status.value)
                )
                if result.rowcount == 0:
                    # Lost a race with another writer
                    latest = self._require_session(conn, session_id)["status"]
                    raise InvalidStatusTransitionError(session_id, latest, status.value)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update session '{session_id}': {exc}") from exc

        logger.info("Session %s -> %s", session_id, status.value)

    def get_session_metadata(self, session_id: str) -> Optional[Session]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(sessions_table).where(sessions_table.c.id == session_id)
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read session '{session_id}': {exc}") from exc
        return _to_session(row) if row is not None else None

    def list_sessions(self, offset: int = 0, limit: int = 50) -> list[Session]:
        query = (
            select(sessions_table)
            .order_by(sessions_table.c.started_at.desc(), sessions_table.c.id)
            .offset(offset)
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list sessions: {exc}") from exc
        return [_to_session(row) for row in rows]

    # -- results ---------------------------------------------------------

    def save_row_result(self, session_id: str, result: RowResult) -> None:
        data = result.model_dump(mode="json")
        try:
            with self.engine.begin() as conn:
                self._require_session(conn, session_id)
                updated = conn.execute(
                    results_table.update()
                    .where(results_table.c.session_id == session_id)
                    .where(results_table.c.row_index == result.row_index)
                    .values(data=data)
                )
                if updated.rowcount == 0:
                    conn.execute(
                        results_table.insert().values(
                            session_id=session_id, row_index=result.row_index, data=data,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Failed to save result for session '{session_id}': {exc}",
                row_index=result.row_index,
            ) from exc

    def get_session_results(
        self,
        session_id: str,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[RowResult]:
        query = (
            select(results_table.c.data)
            .where(results_table.c.session_id == session_id)
            .order_by(results_table.c.row_index)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            with self.engine.connect() as conn:
                blobs = conn.execute(query).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read results of session '{session_id}': {exc}") from exc
        return [load_result(blob) for blob in blobs]

    # -- metrics ---------------------------------------------------------

    def save_metrics(self, session_id: str, metrics: Metrics) -> None:
        data = metrics.model_dump(mode="json")
        now = datetime.now(timezone.utc)
        try:
            with self.engine.begin() as conn:
                self._require_session(conn, session_id)
                updated = conn.execute(
                    metrics_table.update()
                    .where(metrics_table.c.session_id == session_id)
                    .values(data=data, updated_at=now)
                )
                if updated.rowcount == 0:
                    conn.execute(
                        metrics_table.insert().values(
                            session_id=session_id, data=data, updated_at=now,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to save metrics of session '{session_id}': {exc}") from exc

    def get_metrics(self, session_id: str) -> Optional[Metrics]:
        try:
            with self.engine.connect() as conn:
                blob = conn.execute(
                    select(metrics_table.c.data).where(metrics_table.c.session_id == session_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read metrics of session '{session_id}': {exc}") from exc
        return load_metrics(blob) if blob is not None else None

    def close(self) -> None:
        self.engine.dispose()

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _require_session(conn: Connection, session_id: str) -> dict[str, Any]:
        row = conn.execute(
            select(sessions_table).where(sessions_table.c.id == session_id)
        ).mappings().first()
        if row is None:
            raise SessionNotFoundError(session_id)
        return dict(row)


def _to_session(row: Any) -> Session:
    started_at = row["started_at"]
    # SQLite hands back naive datetimes
    if started_at is not None and started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return Session(
        id=row["id"],
        total_rows=row["total_rows"],
        processed_rows=min(row["processed_rows"], row["total_rows"]),
        status=SessionStatus(row["status"]),
        started_at=started_at,
    )
