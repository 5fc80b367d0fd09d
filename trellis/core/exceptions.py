"""
Custom exceptions for the Trellis enrichment tool.

Provides specific exception types for different failure modes
with helpful error messages and context.
"""

from __future__ import annotations

from typing import Any, Iterable


class EnrichmentError(Exception):
    """Base exception for all enrichment-related errors.

    Attributes:
        message: Human-readable error description.
        row_index: Row that triggered the error (``None`` for non-row errors).
        field: Field name involved (``None`` if not field-specific).
    """

    def __init__(self, message: str, row_index: int | None = None, field: str | None = None):
        self.message = message
        self.row_index = row_index
        self.field = field

        # Build descriptive error message
        error_parts = [message]
        if row_index is not None:
            error_parts.append(f"Row: {row_index}")
        if field is not None:
            error_parts.append(f"Field: {field}")

        super().__init__(" | ".join(error_parts))


class FieldValidationError(EnrichmentError):
    """Raised when a batch's field definitions cannot be executed.

    Common causes:
        - Duplicate field names.
        - A dependency naming neither a requested field nor an input column.
        - A field depending on itself or on a cycle of other fields.

    Attributes:
        fields: Names of the offending fields.
    """

    def __init__(self, message: str, fields: Iterable[str] = (), **kwargs: Any):
        self.fields = list(fields)
        super().__init__(message, **kwargs)


class DependencyCycleError(FieldValidationError):
    """Raised when field dependencies form a cycle.

    Attributes:
        cycle: The cycle as a closed path, e.g. ``["a", "b", "a"]``.
    """

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            fields=sorted(set(cycle)),
        )


class ConfigurationError(EnrichmentError):
    """Raised when configuration is invalid."""

    pass


class ExtractionError(EnrichmentError):
    """Raised when the extraction provider returns an unusable response."""

    pass


class StorageError(EnrichmentError):
    """Raised when a session store operation fails.

    Storage failures are never swallowed: a lost write would corrupt
    session progress accounting.
    """

    pass


class SessionNotFoundError(StorageError):
    """Raised when an operation targets a session that does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


class InvalidStatusTransitionError(StorageError):
    """Raised when a session status update would move backwards."""

    def __init__(self, session_id: str, current: str, requested: str):
        self.session_id = session_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Session '{session_id}' cannot move from '{current}' to '{requested}'"
        )


class ToolRelayError(EnrichmentError):
    """Raised when the relay refuses or fails to forward a tool call."""

    pass
