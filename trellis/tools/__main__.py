"""Run the enrichment MCP server, or a relay in front of a remote one.

Environment:
    OPENAI_API_KEY        Key for the OpenAI extraction client.
    TRELLIS_MODEL         Extraction model (default gpt-4.1-mini).
    TRELLIS_TRANSPORT     stdio (default), sse or streamable-http.
    TRELLIS_UPSTREAM_URL  When set, serve a relay to this MCP endpoint instead.
    TRELLIS_LOG_LEVEL     Logging level (default INFO).

    python -m trellis.tools
"""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from ..core.config import EnrichmentConfig
from ..core.exceptions import ConfigurationError
from ..core.orchestrator import RowOrchestrator
from ..providers.openai import OpenAIExtractionClient
from ..schemas.fields import DEFAULT_CONTEXT_CONFIG
from .client import EnrichmentToolClient
from .relay import RelayToolServer
from .server import EnrichmentToolServer

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "sse", "streamable-http")


async def _serve(mcp: FastMCP, transport: str) -> None:
    if transport == "stdio":
        await mcp.run_stdio_async()
    elif transport == "sse":
        await mcp.run_sse_async()
    else:
        await mcp.run_streamable_http_async()


async def _serve_relay(upstream_url: str, transport: str) -> None:
    async with EnrichmentToolClient() as client:
        await client.connect_http(upstream_url)
        relay = RelayToolServer(client)
        await _serve(relay.mcp, transport)


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("TRELLIS_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    transport = os.getenv("TRELLIS_TRANSPORT", "stdio")
    if transport not in TRANSPORTS:
        raise ConfigurationError(
            f"TRELLIS_TRANSPORT must be one of {', '.join(TRANSPORTS)}, got '{transport}'"
        )

    upstream_url = os.getenv("TRELLIS_UPSTREAM_URL")
    if upstream_url:
        logger.info("Starting relay to %s over %s", upstream_url, transport)
        asyncio.run(_serve_relay(upstream_url, transport))
        return

    client = OpenAIExtractionClient(model=os.getenv("TRELLIS_MODEL", "gpt-4.1-mini"))
    orchestrator = RowOrchestrator(
        client,
        config=EnrichmentConfig.for_production(),
        context=DEFAULT_CONTEXT_CONFIG,
    )
    server = EnrichmentToolServer(orchestrator)
    logger.info("Starting enrichment server over %s", transport)
    asyncio.run(_serve(server.mcp, transport))


if __name__ == "__main__":
    main()
