"""Extraction providers."""

from .base import ExtractionAPIError, ExtractionClient
from .function import FunctionExtractionClient
from .openai import OpenAIExtractionClient

__all__ = [
    "ExtractionAPIError",
    "ExtractionClient",
    "FunctionExtractionClient",
    "OpenAIExtractionClient",
]
