"""MCP tool exposure: enrichment server, upstream client and relay."""

from .client import EnrichmentToolClient
from .relay import RelayToolServer
from .server import EnrichmentToolServer

__all__ = ["EnrichmentToolClient", "EnrichmentToolServer", "RelayToolServer"]
