"""Tests for EnrichmentConfig defaults, validation and presets."""

from __future__ import annotations

import pytest

from trellis.core.config import EnrichmentConfig


class TestEnrichmentConfig:
    def test_defaults(self):
        config = EnrichmentConfig()
        assert config.max_workers == 3
        assert config.row_delay == 1.0
        assert config.max_attempts == 3
        assert config.confidence_threshold == 0.7
        assert config.overwrite_fields is False

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"max_workers": 0}, "max_workers"),
            ({"row_delay": -1}, "row_delay"),
            ({"max_attempts": 0}, "max_attempts"),
            ({"retry_base_delay": -0.5}, "retry_base_delay"),
            ({"confidence_threshold": 1.2}, "confidence_threshold"),
        ],
    )
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            EnrichmentConfig(**kwargs)

    def test_development_preset(self):
        config = EnrichmentConfig.for_development()
        assert config.row_delay == 0.0
        assert config.max_workers == 2

    def test_production_preset(self):
        config = EnrichmentConfig.for_production()
        assert config.enable_progress_bar is False
        assert config.max_workers == 5
