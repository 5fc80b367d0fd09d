"""
Core functionality for the Trellis enrichment tool.
"""

from .config import EnrichmentConfig
from .exceptions import (
    ConfigurationError,
    DependencyCycleError,
    EnrichmentError,
    ExtractionError,
    FieldValidationError,
    InvalidStatusTransitionError,
    SessionNotFoundError,
    StorageError,
    ToolRelayError,
)
from .dependencies import DependencyResolver, Resolution
from .hooks import BatchEndEvent, BatchStartEvent, EnrichmentHooks, RowCompleteEvent
from .metrics import aggregate_metrics
from .orchestrator import RowOrchestrator
from .session import SessionRunner

__all__ = [
    'EnrichmentConfig',
    'EnrichmentError',
    'FieldValidationError',
    'DependencyCycleError',
    'ConfigurationError',
    'ExtractionError',
    'StorageError',
    'SessionNotFoundError',
    'InvalidStatusTransitionError',
    'ToolRelayError',
    'DependencyResolver',
    'Resolution',
    'EnrichmentHooks',
    'BatchStartEvent',
    'RowCompleteEvent',
    'BatchEndEvent',
    'aggregate_metrics',
    'RowOrchestrator',
    'SessionRunner',
]
