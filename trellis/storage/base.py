"""SessionStore — backend-agnostic persistence contract.

Both backends store row results as an opaque JSON blob keyed by
``(session_id, row_index)`` and return them in row-index order. Session
status only moves forward; ``processed_rows`` never exceeds ``total_rows``.
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..core.exceptions import InvalidStatusTransitionError
from ..schemas.results import Metrics, RowResult, Session, SessionStatus

# Allowed forward transitions; anything else is rejected.
STATUS_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.FAILED}),
    SessionStatus.RUNNING: frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


def predecessors(status: SessionStatus) -> list[SessionStatus]:
    """Statuses from which *status* may be reached."""
    return [src for src, targets in STATUS_TRANSITIONS.items() if status in targets]


def check_transition(session_id: str, current: SessionStatus, requested: SessionStatus) -> bool:
    """Validate a status change.

    Returns:
        False when the session already has the requested status (no-op),
        True when the change is allowed.

    Raises:
        InvalidStatusTransitionError: The change would move backwards.
    """
    if current == requested:
        return False
    if requested not in STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(session_id, current.value, requested.value)
    return True


def new_session_id() -> str:
    return uuid.uuid4().hex


def dump_result(result: RowResult) -> str:
    return result.model_dump_json()


def load_result(data: Any) -> RowResult:
    """Rebuild a RowResult from a stored blob (JSON text or decoded dict)."""
    if isinstance(data, (str, bytes)):
        return RowResult.model_validate_json(data)
    return RowResult.model_validate(data)


def load_metrics(data: Any) -> Metrics:
    if isinstance(data, (str, bytes)):
        return Metrics.model_validate(json.loads(data))
    return Metrics.model_validate(data)


class SessionStore(ABC):
    """Persistence for sessions, row results and metrics.

    Implementations are selected once at process start (see
    :func:`trellis.storage.create_store`) and injected into consumers.
    """

    @abstractmethod
    def create_tables(self) -> None:
        """Create the backing tables if they do not exist."""

    @abstractmethod
    def create_session(self, total_rows: int, session_id: Optional[str] = None) -> Session:
        """Insert a new ``pending`` session and return it."""

    @abstractmethod
    def increment_processed(self, session_id: str) -> None:
        """Atomically add one to ``processed_rows``, capped at ``total_rows``."""

    @abstractmethod
    def update_status(self, session_id: str, status: SessionStatus) -> None:
        """Move the session forward to *status*."""

    @abstractmethod
    def save_row_result(self, session_id: str, result: RowResult) -> None:
        """Upsert the result for ``(session_id, result.row_index)``."""

    @abstractmethod
    def get_session_metadata(self, session_id: str) -> Optional[Session]:
        """Return the session, or None when it does not exist."""

    @abstractmethod
    def get_session_results(
        self,
        session_id: str,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[RowResult]:
        """Results in row-index order; no ``limit`` returns the rest of the set."""

    @abstractmethod
    def save_metrics(self, session_id: str, metrics: Metrics) -> None:
        """Replace the cached metrics of a session."""

    @abstractmethod
    def get_metrics(self, session_id: str) -> Optional[Metrics]:
        """Cached metrics, or None when never saved."""

    @abstractmethod
    def list_sessions(self, offset: int = 0, limit: int = 50) -> list[Session]:
        """Sessions, most recently started first."""

    def close(self) -> None:
        """Release backend resources."""
