"""Contract tests run against both session store backends."""

from __future__ import annotations

import logging

import pytest

from trellis.core.exceptions import (
    InvalidStatusTransitionError,
    SessionNotFoundError,
    StorageError,
)
from trellis.schemas import CellResult, Metrics, RowResult, RowStatus, SessionStatus


def _result(index: int, value: str = "Tech") -> RowResult:
    return RowResult(
        row_index=index,
        original_data={"email": f"user{index}@acme.co"},
        enrichments={
            "industry": CellResult(value=value, confidence=0.8, sources=["https://acme.example"]),
            "website": CellResult.missing(["domain"]),
        },
        status=RowStatus.SUCCESS,
    )


class TestSessions:
    def test_create_and_read(self, store):
        created = store.create_session(3, session_id="s1")

        session = store.get_session_metadata("s1")

        assert session.id == created.id == "s1"
        assert session.total_rows == 3
        assert session.processed_rows == 0
        assert session.status == SessionStatus.PENDING
        assert session.started_at.tzinfo is not None

    def test_generated_id(self, store):
        session = store.create_session(1)
        assert store.get_session_metadata(session.id) is not None

    def test_duplicate_id_rejected(self, store):
        store.create_session(1, session_id="s1")
        with pytest.raises(StorageError):
            store.create_session(1, session_id="s1")

    def test_unknown_session(self, store):
        assert store.get_session_metadata("missing") is None

    def test_list_sessions(self, store):
        store.create_session(1, session_id="a")
        store.create_session(1, session_id="b")

        assert {s.id for s in store.list_sessions()} == {"a", "b"}
        assert len(store.list_sessions(limit=1)) == 1
        assert len(store.list_sessions(offset=1)) == 1


class TestProgress:
    def test_increment(self, store):
        store.create_session(2, session_id="s1")
        store.increment_processed("s1")
        assert store.get_session_metadata("s1").processed_rows == 1

    def test_increment_capped_at_total(self, store, caplog):
        store.create_session(2, session_id="s1")
        with caplog.at_level(logging.WARNING):
            for _ in range(4):
                store.increment_processed("s1")

        assert store.get_session_metadata("s1").processed_rows == 2
        assert "increment ignored" in caplog.text

    def test_increment_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.increment_processed("missing")


class TestStatus:
    def test_forward_path(self, store):
        store.create_session(1, session_id="s1")
        store.update_status("s1", SessionStatus.RUNNING)
        store.update_status("s1", SessionStatus.COMPLETED)
        assert store.get_session_metadata("s1").status == SessionStatus.COMPLETED

    def test_pending_to_failed(self, store):
        store.create_session(1, session_id="s1")
        store.update_status("s1", SessionStatus.FAILED)
        assert store.get_session_metadata("s1").status == SessionStatus.FAILED

    def test_same_status_is_noop(self, store):
        store.create_session(1, session_id="s1")
        store.update_status("s1", SessionStatus.RUNNING)
        store.update_status("s1", SessionStatus.RUNNING)
        assert store.get_session_metadata("s1").status == SessionStatus.RUNNING

    @pytest.mark.parametrize(
        "path, backwards",
        [
            ([SessionStatus.RUNNING], SessionStatus.PENDING),
            ([SessionStatus.RUNNING, SessionStatus.COMPLETED], SessionStatus.RUNNING),
            ([SessionStatus.RUNNING, SessionStatus.COMPLETED], SessionStatus.FAILED),
            ([SessionStatus.FAILED], SessionStatus.COMPLETED),
        ],
    )
    def test_backwards_rejected(self, store, path, backwards):
        store.create_session(1, session_id="s1")
        for status in path:
            store.update_status("s1", status)

        with pytest.raises(InvalidStatusTransitionError):
            store.update_status("s1", backwards)
        assert store.get_session_metadata("s1").status == path[-1]

    def test_skip_running_rejected(self, store):
        store.create_session(1, session_id="s1")
        with pytest.raises(InvalidStatusTransitionError):
            store.update_status("s1", SessionStatus.COMPLETED)

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.update_status("missing", SessionStatus.RUNNING)


class TestResults:
    def test_roundtrip_offset_equals_row_index(self, store):
        store.create_session(3, session_id="s1")
        results = [_result(i, value=f"v{i}") for i in range(3)]
        for r in reversed(results):
            store.save_row_result("s1", r)

        for r in results:
            assert store.get_session_results("s1", offset=r.row_index, limit=1) == [r]

    def test_full_set_in_row_order(self, store):
        store.create_session(3, session_id="s1")
        for i in (2, 0, 1):
            store.save_row_result("s1", _result(i))

        assert [r.row_index for r in store.get_session_results("s1")] == [0, 1, 2]

    def test_offset_without_limit(self, store):
        store.create_session(3, session_id="s1")
        for i in range(3):
            store.save_row_result("s1", _result(i))

        assert [r.row_index for r in store.get_session_results("s1", offset=1)] == [1, 2]

    def test_upsert_replaces(self, store):
        store.create_session(1, session_id="s1")
        store.save_row_result("s1", _result(0, value="old"))
        store.save_row_result("s1", _result(0, value="new"))

        results = store.get_session_results("s1")
        assert len(results) == 1
        assert results[0].enrichments["industry"].value == "new"

    def test_save_for_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.save_row_result("missing", _result(0))

    def test_no_results(self, store):
        store.create_session(1, session_id="s1")
        assert store.get_session_results("s1") == []


class TestMetrics:
    def test_roundtrip_and_replace(self, store):
        store.create_session(1, session_id="s1")
        assert store.get_metrics("s1") is None

        store.save_metrics("s1", Metrics(average_confidence=0.5, missing_fields={"a": 1}))
        store.save_metrics("s1", Metrics(average_confidence=0.75, error_count=2))

        assert store.get_metrics("s1") == Metrics(average_confidence=0.75, error_count=2)
