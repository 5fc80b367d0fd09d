"""EnrichmentToolClient — MCP client for a remote enrichment server."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Any, Optional, Sequence, Union

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import CallToolResult, Implementation, ListToolsResult

from ..core.exceptions import ToolRelayError
from ..schemas.fields import FieldDefinition

logger = logging.getLogger(__name__)

FieldInput = Union[FieldDefinition, dict[str, Any]]


class EnrichmentToolClient:
    """Thin typed wrapper around an MCP ``ClientSession``.

    Either pass an already initialised session, or call
    :meth:`connect_http` to open a streamable HTTP connection owned by the
    client (released by :meth:`aclose`).

    Example:
        async with EnrichmentToolClient() as client:
            await client.connect_http("http://localhost:8000/mcp")
            result = await client.enrich_row(row, fields)
    """

    def __init__(self, session: Optional[ClientSession] = None):
        self._session = session
        self._exit_stack = AsyncExitStack()
        self.server_info: Optional[Implementation] = None

    async def connect_http(self, url: str) -> None:
        read, write, _ = await self._exit_stack.enter_async_context(streamablehttp_client(url))
        session = await self._exit_stack.enter_async_context(ClientSession(read, write))
        init = await session.initialize()
        self.server_info = init.serverInfo
        self._session = session
        logger.info("Connected to MCP server %s at %s", init.serverInfo.name, url)

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise ToolRelayError("MCP client is not connected")
        return self._session

    async def list_tools(self) -> ListToolsResult:
        return await self.session.list_tools()

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> CallToolResult:
        logger.debug("Calling remote tool %s", name)
        return await self.session.call_tool(name, arguments or {})

    async def enrich_row(
        self,
        row: dict[str, str],
        fields: Sequence[FieldInput],
        identifier_column: str = "email",
        name_column: Optional[str] = None,
        row_index: int = 0,
    ) -> CallToolResult:
        arguments: dict[str, Any] = {
            "row": row,
            "fields": [_field_payload(f) for f in fields],
            "identifier_column": identifier_column,
            "row_index": row_index,
        }
        if name_column is not None:
            arguments["name_column"] = name_column
        return await self.call_tool("enrich-row", arguments)

    async def plan_field(
        self,
        row: dict[str, str],
        field: FieldInput,
        row_index: int = 0,
    ) -> CallToolResult:
        return await self.call_tool(
            "plan-enrichment",
            {"row": row, "field": _field_payload(field), "row_index": row_index},
        )

    async def aclose(self) -> None:
        await self._exit_stack.aclose()
        self._session = None

    async def __aenter__(self) -> EnrichmentToolClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _field_payload(field: FieldInput) -> dict[str, Any]:
    if isinstance(field, FieldDefinition):
        return field.model_dump(mode="json", exclude_none=True)
    return FieldDefinition.model_validate(field).model_dump(mode="json", exclude_none=True)
