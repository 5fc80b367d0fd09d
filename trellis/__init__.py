"""
Trellis - Dependency-aware row enrichment

Augments tabular rows with fields derived by an extraction provider,
honouring inter-field dependencies, row and neighbor context, and
per-session quality controls. Sessions persist to PostgreSQL/SQLite or
Cassandra, and the same capability is exposed as MCP tools.
"""

# Core must load first: steps and storage import from it
from .core import (
    DependencyResolver,
    EnrichmentConfig,
    EnrichmentError,
    EnrichmentHooks,
    FieldValidationError,
    RowOrchestrator,
    SessionRunner,
    aggregate_metrics,
)
from .providers import FunctionExtractionClient, OpenAIExtractionClient
from .schemas import ContextConfig, FieldDefinition, RowResult
from .steps import build_plan
from .storage import create_store

__version__ = "0.1.0"

__all__ = [
    'RowOrchestrator',
    'SessionRunner',
    'DependencyResolver',
    'EnrichmentConfig',
    'EnrichmentHooks',
    'EnrichmentError',
    'FieldValidationError',
    'FieldDefinition',
    'ContextConfig',
    'RowResult',
    'FunctionExtractionClient',
    'OpenAIExtractionClient',
    'build_plan',
    'aggregate_metrics',
    'create_store',
]
