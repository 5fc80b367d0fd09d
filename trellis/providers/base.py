"""ExtractionClient protocol — provider-agnostic extraction interface."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..schemas.results import ExtractionResult


class ExtractionAPIError(Exception):
    """Provider-agnostic API error for retry logic.

    Wraps provider-specific errors (openai.RateLimitError, timeouts, etc.)
    so the orchestrator's retry loop doesn't need to know about specific SDKs.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
        is_rate_limit: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_rate_limit = is_rate_limit


@runtime_checkable
class ExtractionClient(Protocol):
    """Protocol all extraction providers must satisfy.

    Given a directive and the expected value shape (``String``, ``Number``,
    ``Boolean``, ``Date``, ``List[String]``, ``JSON``), return a value with
    confidence and evidence, or raise.
    """

    async def extract(self, directive: str, expected_type: str) -> ExtractionResult: ...
