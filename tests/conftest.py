"""Shared fixtures: session stores for both backends."""

from __future__ import annotations

from typing import Any

import pytest

from trellis.storage import create_store
from trellis.storage import wide_column as wc
from trellis.storage.wide_column import WideColumnSessionStore


class FakeResultSet:
    """Just enough of ``cassandra.cluster.ResultSet``."""

    def __init__(self, rows: list[dict[str, Any]] | None = None, applied: bool = True):
        self._rows = rows or []
        self.was_applied = applied

    def one(self) -> dict[str, Any] | None:
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


class FakeCassandraSession:
    """In-memory stand-in for a driver session, keyed on the store's CQL text.

    ``lose_status_races`` makes that many conditional status updates report
    ``was_applied = False`` before applying normally.
    """

    def __init__(self):
        self.sessions: dict[str, dict[str, Any]] = {}
        self.progress: dict[str, int] = {}
        self.results: dict[str, dict[int, str]] = {}
        self.metrics: dict[str, dict[str, Any]] = {}
        self.prepared: list[str] = []
        self.executed: list[str] = []
        self.lose_status_races = 0
        self.shut_down = False
        self._handlers = {
            wc.INSERT_SESSION: self._insert_session,
            wc.SELECT_SESSION: self._select_session,
            wc.SELECT_ALL_SESSIONS: self._select_all_sessions,
            wc.UPDATE_STATUS: self._update_status,
            wc.SELECT_PROGRESS: self._select_progress,
            wc.INCREMENT_PROGRESS: self._increment_progress,
            wc.UPSERT_RESULT: self._upsert_result,
            wc.SELECT_RESULTS: self._select_results,
            wc.SELECT_RESULTS_LIMIT: self._select_results_limit,
            wc.UPSERT_METRICS: self._upsert_metrics,
            wc.SELECT_METRICS: self._select_metrics,
        }

    def prepare(self, cql: str) -> str:
        self.prepared.append(cql)
        return cql

    def execute(self, statement: str, params: tuple = ()) -> FakeResultSet:
        self.executed.append(statement)
        if statement.strip().startswith("CREATE"):
            return FakeResultSet()
        return self._handlers[statement](*params)

    def shutdown(self) -> None:
        self.shut_down = True

    # -- handlers --------------------------------------------------------

    def _insert_session(self, session_id, total_rows, status, started_at):
        if session_id in self.sessions:
            return FakeResultSet(applied=False)
        self.sessions[session_id] = {
            "id": session_id,
            "total_rows": total_rows,
            "status": status,
            # the driver hands timestamps back naive
            "started_at": started_at.replace(tzinfo=None),
        }
        return FakeResultSet()

    def _select_session(self, session_id):
        row = self.sessions.get(session_id)
        return FakeResultSet([dict(row)] if row else [])

    def _select_all_sessions(self):
        return FakeResultSet([dict(r) for r in self.sessions.values()])

    def _update_status(self, status, session_id, expected):
        row = self.sessions.get(session_id)
        if self.lose_status_races:
            self.lose_status_races -= 1
            return FakeResultSet(applied=False)
        if row is None or row["status"] != expected:
            return FakeResultSet(applied=False)
        row["status"] = status
        return FakeResultSet()

    def _select_progress(self, session_id):
        if session_id not in self.progress:
            return FakeResultSet()
        return FakeResultSet([{"processed_rows": self.progress[session_id]}])

    def _increment_progress(self, session_id):
        self.progress[session_id] = self.progress.get(session_id, 0) + 1
        return FakeResultSet()

    def _upsert_result(self, session_id, row_index, data):
        self.results.setdefault(session_id, {})[row_index] = data
        return FakeResultSet()

    def _sorted_results(self, session_id):
        rows = self.results.get(session_id, {})
        return [{"data": rows[i]} for i in sorted(rows)]

    def _select_results(self, session_id):
        return FakeResultSet(self._sorted_results(session_id))

    def _select_results_limit(self, session_id, limit):
        return FakeResultSet(self._sorted_results(session_id)[:limit])

    def _upsert_metrics(self, session_id, data, updated_at):
        self.metrics[session_id] = {"data": data, "updated_at": updated_at}
        return FakeResultSet()

    def _select_metrics(self, session_id):
        row = self.metrics.get(session_id)
        return FakeResultSet([{"data": row["data"]}] if row else [])


@pytest.fixture
def relational_store():
    store = create_store("sqlite://")
    yield store
    store.close()


@pytest.fixture
def cassandra_session():
    return FakeCassandraSession()


@pytest.fixture
def wide_column_store(cassandra_session):
    store = WideColumnSessionStore(cassandra_session)
    store.create_tables()
    return store


@pytest.fixture(params=["relational", "wide_column"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")
