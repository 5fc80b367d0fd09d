"""RelayToolServer — forwards MCP tool calls to an upstream enrichment server.

Two paths:

- typed: ``enrich-row`` / ``plan-enrichment`` validate their arguments
  locally and forward to the same tools upstream;
- untyped: ``proxy-remote-tool`` forwards any call whose tool name is in
  the registry (the ``allowed_tools`` list, else the upstream tool list).
"""

import json
import logging
from typing import Any, Iterable, Optional, Sequence

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, ContentBlock, TextContent

from ..core.exceptions import ToolRelayError
from ..schemas.fields import FieldDefinition
from .client import EnrichmentToolClient

logger = logging.getLogger(__name__)

DEFAULT_RELAY_NAME = "trellis-relay"
RELAY_INSTRUCTIONS = "Forwards tool calls to the configured upstream enrichment server."


class RelayToolServer:
    """FastMCP server relaying to an :class:`EnrichmentToolClient`.

    Args:
        client: Connected client for the upstream server.
        allowed_tools: Tool names the proxy may forward. When omitted the
            upstream tool list is fetched once and used as the registry.
        name: Server name advertised to clients.
    """

    def __init__(
        self,
        client: EnrichmentToolClient,
        allowed_tools: Optional[Iterable[str]] = None,
        name: str = DEFAULT_RELAY_NAME,
    ):
        self.client = client
        self.allowed_tools = set(allowed_tools) if allowed_tools is not None else None
        self._remote_tools: Optional[set[str]] = None
        self.mcp = FastMCP(name, instructions=RELAY_INSTRUCTIONS)
        self._register_tools()

    def _register_tools(self) -> None:
        self.mcp.add_tool(
            self.relay_enrich_row,
            name="enrich-row",
            title="Enrich Row (relayed)",
            description="Forward a single-row enrichment to the upstream server.",
            structured_output=False,
        )
        self.mcp.add_tool(
            self.relay_plan_enrichment,
            name="plan-enrichment",
            title="Plan Enrichment Prompt (relayed)",
            description="Forward a prompt plan preview to the upstream server.",
            structured_output=False,
        )
        self.mcp.add_tool(
            self.proxy_remote_tool,
            name="proxy-remote-tool",
            title="Proxy MCP Tool",
            description="Execute a registered tool on the upstream server.",
            structured_output=False,
        )
        self.mcp.add_tool(
            self.list_remote_tools,
            name="list-remote-tools",
            title="List Remote Tools",
            description="Expose the upstream tool surface for orchestration or discovery.",
            structured_output=False,
        )

    # -- typed path ------------------------------------------------------

    async def relay_enrich_row(
        self,
        row: dict[str, str],
        fields: list[FieldDefinition],
        identifier_column: str = "email",
        name_column: Optional[str] = None,
        row_index: int = 0,
    ) -> list[ContentBlock]:
        response = await self.client.enrich_row(
            row,
            fields,
            identifier_column=identifier_column,
            name_column=name_column,
            row_index=row_index,
        )
        return _unwrap("enrich-row", response)

    async def relay_plan_enrichment(
        self,
        row: dict[str, str],
        field: FieldDefinition,
        row_index: int = 0,
    ) -> list[ContentBlock]:
        response = await self.client.plan_field(row, field, row_index=row_index)
        return _unwrap("plan-enrichment", response)

    # -- untyped path ----------------------------------------------------

    async def proxy_remote_tool(
        self,
        tool: str,
        arguments: Optional[dict[str, Any]] = None,
    ) -> list[ContentBlock]:
        """Forward *tool* with *arguments*.

        Raises:
            ToolRelayError: *tool* is not in the registry, or the upstream
                call reported an error.
        """
        registry = await self.registry()
        if tool not in registry:
            raise ToolRelayError(
                f"Unknown remote tool '{tool}'. Available: {', '.join(sorted(registry)) or 'none'}"
            )
        logger.info("Relaying call to remote tool %s", tool)
        response = await self.client.call_tool(tool, arguments or {})
        return _unwrap(tool, response)

    async def list_remote_tools(self) -> str:
        listing = await self.client.list_tools()
        self._remote_tools = {t.name for t in listing.tools}
        server = self.client.server_info
        payload = {
            "server": server.model_dump(mode="json", exclude_none=True) if server else None,
            "tools": [t.model_dump(mode="json", exclude_none=True) for t in listing.tools],
        }
        return json.dumps(payload, indent=2)

    async def registry(self) -> set[str]:
        """Tool names the proxy may forward."""
        if self.allowed_tools is not None:
            return self.allowed_tools
        if self._remote_tools is None:
            listing = await self.client.list_tools()
            self._remote_tools = {t.name for t in listing.tools}
        return self._remote_tools


def _unwrap(tool: str, response: CallToolResult) -> list[ContentBlock]:
    if response.isError:
        raise ToolRelayError(f"Remote tool '{tool}' failed: {_text_of(response.content)}")
    return list(response.content)


def _text_of(content: Sequence[ContentBlock]) -> str:
    texts = [block.text for block in content if isinstance(block, TextContent)]
    return " ".join(texts) or "no details"
