"""EnrichmentToolServer — exposes row enrichment as MCP tools.

Tools:
    enrich-row        Run the orchestrator for one row and return its RowResult.
    plan-enrichment   Preview the directive for one cell without calling the provider.
    describe-tools    Server instructions plus the registered tool list.
"""

import json
import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..core.dependencies import has_value
from ..core.orchestrator import RowOrchestrator
from ..schemas.fields import FieldDefinition
from ..schemas.results import RowResult, RowStatus
from ..steps.prompt_builder import build_plan

logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "trellis-enrichment"
DEFAULT_INSTRUCTIONS = "Call tools to enrich rows or preview prompt plans."
NAME_KEY = "_name"


class EnrichmentToolServer:
    """FastMCP server wrapping a :class:`RowOrchestrator`.

    Args:
        orchestrator: Orchestrator used by ``enrich-row``; its context config
            also shapes ``plan-enrichment`` directives.
        name: Server name advertised to clients.
        instructions: Server instructions advertised to clients.
    """

    def __init__(
        self,
        orchestrator: RowOrchestrator,
        name: str = DEFAULT_SERVER_NAME,
        instructions: str = DEFAULT_INSTRUCTIONS,
    ):
        self.orchestrator = orchestrator
        self.instructions = instructions
        self.mcp = FastMCP(name, instructions=instructions)
        self._register_tools()

    def _register_tools(self) -> None:
        idempotent = ToolAnnotations(idempotentHint=True)
        self.mcp.add_tool(
            self.enrich_row,
            name="enrich-row",
            title="Enrich Row",
            description=(
                "Run the enrichment orchestrator against a single row "
                "using the provided field definitions."
            ),
            annotations=idempotent,
            structured_output=False,
        )
        self.mcp.add_tool(
            self.plan_enrichment,
            name="plan-enrichment",
            title="Plan Enrichment Prompt",
            description=(
                "Return the prompt plan for a specific field, "
                "including dependency resolution notes."
            ),
            annotations=idempotent,
            structured_output=False,
        )
        self.mcp.add_tool(
            self.describe_tools,
            name="describe-tools",
            title="Describe Enrichment Server",
            description="Summarize available tools and the server instructions.",
            structured_output=False,
        )

    async def enrich_row(
        self,
        row: dict[str, str],
        fields: list[FieldDefinition],
        identifier_column: str = "email",
        name_column: Optional[str] = None,
        row_index: int = 0,
    ) -> str:
        """Enrich one row; returns the RowResult as JSON.

        A row without a value in ``identifier_column`` comes back as an
        ``error`` result and no extraction is attempted.
        """
        working = dict(row)
        if name_column and has_value(working.get(name_column)):
            working[NAME_KEY] = working[name_column]

        if not has_value(working.get(identifier_column)):
            logger.info(
                "Row %d has no value in identifier column '%s'; skipping",
                row_index, identifier_column,
            )
            result = RowResult(
                row_index=row_index,
                original_data=dict(row),
                status=RowStatus.ERROR,
                error=f"No value in identifier column '{identifier_column}'",
            )
        else:
            result = await self.orchestrator.enrich_row(working, fields, row_index=row_index)
        return result.model_dump_json(indent=2)

    async def plan_enrichment(
        self,
        row: dict[str, str],
        field: FieldDefinition,
        row_index: int = 0,
    ) -> str:
        """Directive preview for one cell, as JSON."""
        plan = build_plan(field, row, row_index, [], {}, self.orchestrator.context)
        return json.dumps(plan.to_dict(), indent=2)

    async def describe_tools(self) -> str:
        tools = await self.mcp.list_tools()
        payload: dict[str, Any] = {
            "instructions": self.instructions,
            "tools": [tool.model_dump(mode="json", exclude_none=True) for tool in tools],
        }
        return json.dumps(payload, indent=2)
