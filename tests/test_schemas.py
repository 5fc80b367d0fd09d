"""Tests for field, context and result schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from trellis.schemas import (
    DEFAULT_CONTEXT_CONFIG,
    CellResult,
    ContextConfig,
    ExtractionResult,
    FieldDefinition,
    RowResult,
    RowStatus,
    humanize,
)


class TestHumanize:
    @pytest.mark.parametrize(
        "raw, label",
        [
            ("company_name", "Company Name"),
            ("linkedinUrl", "Linkedin Url"),
            ("employee-count", "Employee Count"),
            ("_name", "Name"),
            ("email", "Email"),
        ],
    )
    def test_labels(self, raw, label):
        assert humanize(raw) == label


class TestFieldDefinition:
    def test_defaults(self):
        f = FieldDefinition(name="company_name")
        assert f.display_name == "Company Name"
        assert f.type == "String"
        assert f.dependencies == []
        assert f.window == 1

    def test_explicit_display_name_kept(self):
        f = FieldDefinition(name="ceo", display_name="Chief Executive")
        assert f.display_name == "Chief Executive"

    def test_wire_aliases(self):
        f = FieldDefinition.model_validate({
            "name": "industry",
            "displayName": "Industry",
            "promptTemplate": "Use GICS sectors",
            "adjacentWindow": 2,
        })
        assert f.instructions == "Use GICS sectors"
        assert f.window == 2

    def test_zero_window(self):
        assert FieldDefinition(name="a", neighbor_window=0).window == 0

    def test_negative_window_rejected(self):
        with pytest.raises(ValidationError):
            FieldDefinition(name="a", neighbor_window=-1)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            FieldDefinition(name="a", type="Float")

    def test_extra_keys_rejected(self):
        with pytest.raises(ValidationError):
            FieldDefinition(name="a", colour="red")

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            FieldDefinition(name="  ")

    def test_frozen(self):
        f = FieldDefinition(name="a")
        with pytest.raises(ValidationError):
            f.name = "b"


class TestContextConfig:
    def test_label_mapping_and_fallback(self):
        ctx = ContextConfig(row_context_mappings={"email": "Work Email"})
        assert ctx.label_for("email") == "Work Email"
        assert ctx.label_for("company_name") == "Company Name"

    def test_column_instructions_override(self):
        ctx = ContextConfig(column_instructions={"industry": "Override"})
        f = FieldDefinition(name="industry", instructions="Own")
        assert ctx.instructions_for(f) == "Override"
        assert ctx.instructions_for(FieldDefinition(name="x", instructions="Own")) == "Own"

    def test_camel_case_aliases(self):
        ctx = ContextConfig.model_validate({
            "globalInstructions": "Be brief",
            "rowContextMappings": {"a": "A"},
            "columnInstructions": {"b": "B"},
        })
        assert ctx.global_instructions == "Be brief"

    def test_default_config_labels(self):
        assert DEFAULT_CONTEXT_CONFIG.label_for("_name") == "Person Name"
        assert DEFAULT_CONTEXT_CONFIG.label_for("email") == "Email"


class TestCellResult:
    def test_missing_confidence_normalised(self):
        cell = CellResult.from_extraction(ExtractionResult(value="x"), threshold=0.7)
        assert cell.confidence == 0.5
        assert cell.low_confidence is True

    def test_high_confidence_not_flagged(self):
        cell = CellResult.from_extraction(ExtractionResult(value="x", confidence=0.9), 0.7)
        assert cell.low_confidence is False

    def test_missing_dependencies_cell(self):
        cell = CellResult.missing(["company"])
        assert cell.value is None
        assert cell.confidence == 0.0
        assert cell.missing_dependencies == ["company"]
        assert not cell.is_error

    def test_failed_cell(self):
        cell = CellResult.failed("boom")
        assert cell.is_error
        assert cell.confidence is None


class TestExtractionResult:
    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ExtractionResult(value="x", confidence=1.5)

    def test_sources_coerced(self):
        assert ExtractionResult(value="x", sources="https://a.example").sources == ["https://a.example"]
        assert ExtractionResult(value="x", sources=None).sources == []


class TestRowResult:
    def test_json_roundtrip_keeps_cells(self):
        result = RowResult(
            row_index=3,
            original_data={"email": "a@b.co"},
            enrichments={"industry": CellResult(value="Tech", confidence=0.8)},
            status=RowStatus.SUCCESS,
        )
        loaded = RowResult.model_validate_json(result.model_dump_json())
        assert loaded == result
