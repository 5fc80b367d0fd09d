"""FunctionExtractionClient — wraps any sync or async callable as a provider."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from ..core.exceptions import ExtractionError
from ..schemas.results import ExtractionResult


class FunctionExtractionClient:
    """Adapts a user-supplied callable to the ExtractionClient protocol.

    The callable receives ``(directive, expected_type)`` and returns an
    :class:`ExtractionResult`, a mapping with ``value`` / ``confidence`` /
    ``sources`` keys, or a bare value (confidence then defaults downstream).

    Sync functions are executed via ``run_in_executor`` so they
    never block the event loop.
    """

    def __init__(self, fn: Callable[..., Any]):
        self.fn = fn
        self._is_async = asyncio.iscoroutinefunction(fn)

    async def extract(self, directive: str, expected_type: str) -> ExtractionResult:
        if self._is_async:
            raw = await self.fn(directive, expected_type)
        else:
            loop = asyncio.get_running_loop()
            raw = await loop.run_in_executor(None, self.fn, directive, expected_type)

        if isinstance(raw, ExtractionResult):
            return raw
        if isinstance(raw, Mapping):
            try:
                return ExtractionResult.model_validate(dict(raw))
            except ValueError as exc:
                raise ExtractionError(f"Invalid extraction payload: {exc}") from exc
        return ExtractionResult(value=raw)
