"""WideColumnSessionStore — Cassandra backend (cassandra-driver).

Results are partitioned by ``session_id`` and clustered by ``row_index``
ascending, so a partition read returns them in row order. Progress lives in
a counter table; counters cannot be capped server-side, so the increment
checks the current value first and reads clamp to ``total_rows``. Status
changes are lightweight transactions (``IF status = ?``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import islice
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from cassandra import DriverException, OperationTimedOut

from ..core.exceptions import (
    ConfigurationError,
    InvalidStatusTransitionError,
    SessionNotFoundError,
    StorageError,
)
from ..schemas.results import Metrics, RowResult, Session, SessionStatus
from .base import (
    SessionStore,
    check_transition,
    dump_result,
    load_metrics,
    load_result,
    new_session_id,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 9042
DEFAULT_DATACENTER = "datacenter1"
STATUS_UPDATE_ATTEMPTS = 3

_DRIVER_ERRORS = (DriverException, OperationTimedOut)

CREATE_KEYSPACE = (
    "CREATE KEYSPACE IF NOT EXISTS {keyspace} WITH replication = "
    "{{'class': 'SimpleStrategy', 'replication_factor': {replication_factor}}}"
)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS enrichment_sessions (
        id text PRIMARY KEY,
        total_rows int,
        status text,
        started_at timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS enrichment_session_progress (
        id text PRIMARY KEY,
        processed_rows counter
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS enrichment_results (
        session_id text,
        row_index int,
        data text,
        PRIMARY KEY (session_id, row_index)
    ) WITH CLUSTERING ORDER BY (row_index ASC)
    """,
    """
    CREATE TABLE IF NOT EXISTS enrichment_metrics (
        session_id text PRIMARY KEY,
        data text,
        updated_at timestamp
    )
    """,
)

INSERT_SESSION = (
    "INSERT INTO enrichment_sessions (id, total_rows, status, started_at) "
    "VALUES (?, ?, ?, ?) IF NOT EXISTS"
)
SELECT_SESSION = "SELECT id, total_rows, status, started_at FROM enrichment_sessions WHERE id = ?"
SELECT_ALL_SESSIONS = "SELECT id, total_rows, status, started_at FROM enrichment_sessions"
UPDATE_STATUS = "UPDATE enrichment_sessions SET status = ? WHERE id = ? IF status = ?"
SELECT_PROGRESS = "SELECT processed_rows FROM enrichment_session_progress WHERE id = ?"
INCREMENT_PROGRESS = (
    "UPDATE enrichment_session_progress SET processed_rows = processed_rows + 1 WHERE id = ?"
)
UPSERT_RESULT = "INSERT INTO enrichment_results (session_id, row_index, data) VALUES (?, ?, ?)"
SELECT_RESULTS = "SELECT data FROM enrichment_results WHERE session_id = ?"
SELECT_RESULTS_LIMIT = "SELECT data FROM enrichment_results WHERE session_id = ? LIMIT ?"
UPSERT_METRICS = "INSERT INTO enrichment_metrics (session_id, data, updated_at) VALUES (?, ?, ?)"
SELECT_METRICS = "SELECT data FROM enrichment_metrics WHERE session_id = ?"


class WideColumnSessionStore(SessionStore):
    """Session store on a connected cassandra-driver ``Session``.

    Args:
        session: A driver session already bound to the target keyspace.
        cluster: Owning ``Cluster``; shut down by :meth:`close` when given.
    """

    def __init__(self, session: Any, cluster: Any = None) -> None:
        self.session = session
        self.cluster = cluster
        self._prepared: dict[str, Any] = {}

    @classmethod
    def from_url(cls, url: str) -> WideColumnSessionStore:
        """Connect from ``cassandra://host1,host2:port/keyspace``.

        Query parameters: ``dc`` (local datacenter, default ``datacenter1``)
        and ``replication_factor`` (used when the keyspace is created,
        default 1).
        """
        hosts, port, keyspace, options = parse_cassandra_url(url)

        from cassandra.cluster import Cluster, NoHostAvailable
        from cassandra.policies import DCAwareRoundRobinPolicy

        cluster = Cluster(
            contact_points=hosts,
            port=port,
            load_balancing_policy=DCAwareRoundRobinPolicy(
                local_dc=options.get("dc", DEFAULT_DATACENTER)
            ),
        )
        try:
            session = cluster.connect()
            session.execute(CREATE_KEYSPACE.format(
                keyspace=keyspace,
                replication_factor=int(options.get("replication_factor", 1)),
            ))
            session.set_keyspace(keyspace)
        except (NoHostAvailable, *_DRIVER_ERRORS) as exc:
            cluster.shutdown()
            raise StorageError(f"Failed to connect to Cassandra at {hosts}: {exc}") from exc

        logger.info("Connected to Cassandra %s, keyspace %s", hosts, keyspace)
        return cls(session, cluster=cluster)

    def create_tables(self) -> None:
        for statement in SCHEMA:
            self._execute(statement)

    # -- sessions --------------------------------------------------------

    def create_session(self, total_rows: int, session_id: Optional[str] = None) -> Session:
        session = Session(id=session_id or new_session_id(), total_rows=total_rows)
        result = self._execute(
            INSERT_SESSION,
            (session.id, session.total_rows, session.status.value, session.started_at),
        )
        if not result.was_applied:
            raise StorageError(f"Session '{session.id}' already exists")

        logger.info("Created session %s (%d rows)", session.id, total_rows)
        return session

    def increment_processed(self, session_id: str) -> None:
        total_rows = self._require_session(session_id)["total_rows"]
        if self._processed(session_id) >= total_rows:
            logger.warning("Session %s already at total_rows; increment ignored", session_id)
            return
        self._execute(INCREMENT_PROGRESS, (session_id,))

    def update_status(self, session_id: str, status: SessionStatus) -> None:
        status = SessionStatus(status)
        for _ in range(STATUS_UPDATE_ATTEMPTS):
            current = SessionStatus(self._require_session(session_id)["status"])
            if not check_transition(session_id, current, status):
                return
            result = self._execute(UPDATE_STATUS, (status.value, session_id, current.value))
            if result.was_applied:
                logger.info("Session %s -> %s", session_id, status.value)
                return
            logger.debug("Status update of session %s lost a race; re-reading", session_id)

        latest = self._require_session(session_id)["status"]
        raise InvalidStatusTransitionError(session_id, latest, status.value)

    def get_session_metadata(self, session_id: str) -> Optional[Session]:
        row = self._execute(SELECT_SESSION, (session_id,)).one()
        if row is None:
            return None
        return self._to_session(row)

    def list_sessions(self, offset: int = 0, limit: int = 50) -> list[Session]:
        """List sessions, newest first.

        The sessions table is not partitioned by time, so this is a full
        scan sorted client-side.
        """
        rows = list(self._execute(SELECT_ALL_SESSIONS))
        rows.sort(key=lambda r: (_utc(_field(r, "started_at")), _field(r, "id")), reverse=True)
        return [self._to_session(row) for row in rows[offset:offset + limit]]

    # -- results ---------------------------------------------------------

    def save_row_result(self, session_id: str, result: RowResult) -> None:
        self._require_session(session_id)
        self._execute(UPSERT_RESULT, (session_id, result.row_index, dump_result(result)))

    def get_session_results(
        self,
        session_id: str,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[RowResult]:
        # CQL has no OFFSET: fetch offset + limit rows and skip client-side
        if limit is None:
            rows = self._execute(SELECT_RESULTS, (session_id,))
        else:
            if limit <= 0:
                return []
            rows = self._execute(SELECT_RESULTS_LIMIT, (session_id, offset + limit))
        return [load_result(_field(row, "data")) for row in islice(rows, offset, None)]

    # -- metrics ---------------------------------------------------------

    def save_metrics(self, session_id: str, metrics: Metrics) -> None:
        self._require_session(session_id)
        self._execute(
            UPSERT_METRICS,
            (session_id, metrics.model_dump_json(), datetime.now(timezone.utc)),
        )

    def get_metrics(self, session_id: str) -> Optional[Metrics]:
        row = self._execute(SELECT_METRICS, (session_id,)).one()
        if row is None:
            return None
        return load_metrics(_field(row, "data"))

    def close(self) -> None:
        if self.cluster is not None:
            self.cluster.shutdown()
        else:
            self.session.shutdown()

    # -- helpers ---------------------------------------------------------

    def _execute(self, cql: str, params: tuple | None = None) -> Any:
        """Run *cql*; parameterised statements are prepared once and cached."""
        try:
            if params is None:
                return self.session.execute(cql)
            statement = self._prepared.get(cql)
            if statement is None:
                statement = self.session.prepare(cql)
                self._prepared[cql] = statement
            return self.session.execute(statement, params)
        except _DRIVER_ERRORS as exc:
            raise StorageError(f"Cassandra query failed: {exc}") from exc

    def _require_session(self, session_id: str) -> dict[str, Any]:
        row = self._execute(SELECT_SESSION, (session_id,)).one()
        if row is None:
            raise SessionNotFoundError(session_id)
        return {
            "id": _field(row, "id"),
            "total_rows": _field(row, "total_rows"),
            "status": _field(row, "status"),
            "started_at": _field(row, "started_at"),
        }

    def _processed(self, session_id: str) -> int:
        row = self._execute(SELECT_PROGRESS, (session_id,)).one()
        if row is None:
            return 0
        return _field(row, "processed_rows") or 0

    def _to_session(self, row: Any) -> Session:
        session_id = _field(row, "id")
        total_rows = _field(row, "total_rows")
        return Session(
            id=session_id,
            total_rows=total_rows,
            processed_rows=min(self._processed(session_id), total_rows),
            status=SessionStatus(_field(row, "status")),
            started_at=_utc(_field(row, "started_at")),
        )


def parse_cassandra_url(url: str) -> tuple[list[str], int, str, dict[str, str]]:
    """Split a ``cassandra://`` URL into hosts, port, keyspace and options.

    Raises:
        ConfigurationError: Wrong scheme, no hosts or no keyspace.
    """
    parts = urlsplit(url)
    if parts.scheme != "cassandra":
        raise ConfigurationError(f"Not a cassandra:// URL: {url}")

    hosts: list[str] = []
    port = DEFAULT_PORT
    for entry in filter(None, parts.netloc.split(",")):
        host, sep, host_port = entry.partition(":")
        hosts.append(host)
        if sep:
            port = int(host_port)
    keyspace = parts.path.strip("/")
    if not hosts or not keyspace:
        raise ConfigurationError(
            f"Cassandra URL needs hosts and a keyspace (cassandra://host:port/keyspace): {url}"
        )

    options = {key: values[-1] for key, values in parse_qs(parts.query).items()}
    return hosts, port, keyspace, options


def _field(row: Any, name: str) -> Any:
    """Read a column from a driver row (named tuple) or a dict row."""
    if isinstance(row, dict):
        return row[name]
    return getattr(row, name)


def _utc(value: Optional[datetime]) -> datetime:
    # Cassandra timestamps come back naive, in UTC
    if value is None:
        return datetime.fromtimestamp(0, timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
