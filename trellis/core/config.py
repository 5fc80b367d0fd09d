"""
Unified configuration for the Trellis enrichment tool.

One dataclass with documented defaults covers concurrency, retry and
quality-gate settings for a batch. Process-level settings (database URL,
API keys) come from the environment at the entry point.
"""

from dataclasses import dataclass


@dataclass
class EnrichmentConfig:
    """
    Configuration for one enrichment batch.

    Passed to ``RowOrchestrator``; read-only for the duration of a run.
    """

    # === Processing Configuration ===
    max_workers: int = 3
    """Maximum number of rows with in-flight extraction calls"""

    row_delay: float = 1.0
    """Pause after each row in seconds (provider rate limiting)"""

    overwrite_fields: bool = False
    """Re-extract fields that already hold a value in the input row"""

    # === Reliability ===
    max_attempts: int = 3
    """Extraction attempts per cell before it is recorded as an error"""

    retry_base_delay: float = 1.0
    """Base delay for exponential backoff between attempts, in seconds"""

    # === Quality ===
    confidence_threshold: float = 0.7
    """Results below this confidence are stored but flagged low-confidence"""

    # === Display ===
    enable_progress_bar: bool = True
    """Show a tqdm progress bar over rows"""

    # === Validation ===
    def __post_init__(self):
        """Validate configuration values after initialization."""
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")

        if self.row_delay < 0:
            raise ValueError(f"row_delay must be non-negative, got {self.row_delay}")

        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")

        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be non-negative, got {self.retry_base_delay}")

        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(
                f"confidence_threshold must be between 0.0 and 1.0, got {self.confidence_threshold}"
            )

    @classmethod
    def for_development(cls) -> 'EnrichmentConfig':
        """Create configuration optimized for development."""
        return cls(
            max_workers=2,          # Less resource usage
            row_delay=0.0,          # No pacing against local fakes
            retry_base_delay=0.1,
            enable_progress_bar=True,
        )

    @classmethod
    def for_production(cls) -> 'EnrichmentConfig':
        """Create configuration optimized for production."""
        return cls(
            max_workers=5,          # More concurrency
            row_delay=2.0,          # Respect rate limits
            retry_base_delay=2.0,
            enable_progress_bar=False,
        )
