"""OpenAI extraction client — covers OpenAI and OpenAI-compatible APIs.

Uses the Chat Completions endpoint in JSON mode so the same adapter works
against third-party providers exposing an OpenAI-compatible ``base_url``
(Ollama, Groq, vLLM, LM Studio, ...).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from ..core.exceptions import ExtractionError
from ..schemas.results import ExtractionResult
from .base import ExtractionAPIError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-mini"

EXTRACTION_SYSTEM_PROMPT = """\
You are a structured data extraction engine filling one cell of a table.
You receive a directive describing the cell, its row context, its
dependencies and the values of the same column in neighboring rows.

OUTPUT CONTRACT
- Return ONLY a single valid JSON object. No prose, no code fences.
- Keys: "value", "confidence", "sources".
- "value" MUST match the expected type given below; use null when the
  directive says a dependency is missing or the value cannot be determined.
- "confidence" is a number between 0 and 1 reflecting how certain you are.
- "sources" is a list of short references (URLs or named sources) backing
  the value; use an empty list when there are none. Never fabricate sources."""


class OpenAIExtractionClient:
    """Extraction client backed by the OpenAI Chat Completions API.

    The SDK client is created lazily on first use, so constructing this
    class never requires an API key. Pass ``client`` to inject a
    preconfigured ``AsyncOpenAI`` instance.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        client: Any = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            kwargs: dict[str, Any] = {"api_key": key}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    def _build_messages(self, directive: str, expected_type: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"{directive}\n\nExpected value type: {expected_type}",
            },
        ]

    async def extract(self, directive: str, expected_type: str) -> ExtractionResult:
        from openai import APIError, APITimeoutError, RateLimitError

        client = self._get_client()

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(directive, expected_type),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except RateLimitError as exc:
            retry_after = None
            if hasattr(exc, "response") and exc.response is not None:
                retry_after_header = exc.response.headers.get("retry-after")
                if retry_after_header:
                    try:
                        retry_after = float(retry_after_header)
                    except (ValueError, TypeError):
                        pass
            raise ExtractionAPIError(
                f"OpenAI rate limit for model '{self.model}': {exc}",
                status_code=429,
                retry_after=retry_after,
                is_rate_limit=True,
            ) from exc
        except APITimeoutError as exc:
            raise ExtractionAPIError(
                f"OpenAI timeout for model '{self.model}': {exc}",
                status_code=408,
            ) from exc
        except APIError as exc:
            raise ExtractionAPIError(
                f"OpenAI API error for model '{self.model}': {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        content = response.choices[0].message.content or ""
        return parse_extraction(content)


def parse_extraction(content: str) -> ExtractionResult:
    """Parse a JSON-mode completion into an :class:`ExtractionResult`.

    Raises:
        ExtractionError: The content is not JSON or fails validation.
    """
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Provider returned invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ExtractionError(f"Provider returned {type(payload).__name__}, expected an object")

    try:
        return ExtractionResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Extraction payload failed validation: %s", exc)
        raise ExtractionError(f"Provider returned an invalid extraction: {exc}") from exc
