"""Tests for dependency resolution, batch validation and ordering."""

from __future__ import annotations

import pytest

from trellis.core.dependencies import (
    DependencyResolver,
    has_value,
    lookup_dependency,
)
from trellis.core.exceptions import DependencyCycleError, FieldValidationError
from trellis.schemas import CellResult, FieldDefinition


def fd(name: str, *deps: str) -> FieldDefinition:
    return FieldDefinition(name=name, dependencies=list(deps))


@pytest.fixture
def resolver():
    return DependencyResolver()


# -- has_value -------------------------------------------------------------


class TestHasValue:
    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
    def test_empty_values(self, value):
        assert has_value(value) is False

    @pytest.mark.parametrize("value", ["x", 0, False, [], 0.0])
    def test_present_values(self, value):
        assert has_value(value) is True


# -- resolve ---------------------------------------------------------------


class TestResolve:
    def test_no_dependencies_always_ready(self, resolver):
        result = resolver.resolve(fd("industry"), {}, {})
        assert result.ready is True
        assert result.missing == []

    def test_dependency_in_raw_row(self, resolver):
        result = resolver.resolve(fd("industry", "company"), {"company": "Acme"}, {})
        assert result.ready is True

    def test_dependency_in_enrichments(self, resolver):
        existing = {"company": CellResult(value="Acme", confidence=0.9)}
        result = resolver.resolve(fd("industry", "company"), {}, existing)
        assert result.ready is True

    def test_dict_and_bare_enrichments(self, resolver):
        field_def = fd("summary", "a", "b")
        result = resolver.resolve(field_def, {}, {"a": {"value": "x"}, "b": "y"})
        assert result.ready is True

    def test_whitespace_counts_as_missing(self, resolver):
        result = resolver.resolve(fd("industry", "company"), {"company": "   "}, {})
        assert result.ready is False
        assert result.missing == ["company"]

    def test_raw_row_checked_before_enrichments(self):
        existing = {"company": CellResult(value="Enriched Co")}
        assert lookup_dependency("company", {"company": "Raw Co"}, existing) == "Raw Co"

    def test_empty_raw_falls_back_to_enrichment(self):
        existing = {"company": CellResult(value="Enriched Co")}
        assert lookup_dependency("company", {"company": ""}, existing) == "Enriched Co"

    def test_null_enrichment_is_missing(self, resolver):
        existing = {"company": CellResult(value=None, confidence=0.0)}
        result = resolver.resolve(fd("industry", "company", "website"), {}, existing)
        assert result.missing == ["company", "website"]


# -- validate --------------------------------------------------------------


class TestValidate:
    def test_valid_graph(self, resolver):
        resolver.validate([fd("a", "email"), fd("b", "a")], known_columns={"email"})

    def test_empty_field_list(self, resolver):
        with pytest.raises(FieldValidationError, match="At least one"):
            resolver.validate([])

    def test_duplicate_names(self, resolver):
        with pytest.raises(FieldValidationError) as exc_info:
            resolver.validate([fd("a"), fd("a")])
        assert exc_info.value.fields == ["a"]

    def test_unknown_reference(self, resolver):
        with pytest.raises(FieldValidationError) as exc_info:
            resolver.validate([fd("a", "nope")], known_columns={"email"})
        assert "a -> nope" in str(exc_info.value)
        assert exc_info.value.fields == ["a"]

    def test_self_dependency(self, resolver):
        with pytest.raises(DependencyCycleError) as exc_info:
            resolver.validate([fd("a", "a")])
        assert exc_info.value.cycle == ["a", "a"]

    def test_two_cycle(self, resolver):
        with pytest.raises(DependencyCycleError) as exc_info:
            resolver.validate([fd("a", "b"), fd("b", "a")])
        assert exc_info.value.cycle[0] == exc_info.value.cycle[-1]
        assert set(exc_info.value.fields) == {"a", "b"}
        assert "Dependency cycle detected" in str(exc_info.value)

    def test_long_cycle(self, resolver):
        fields = [fd("a", "d"), fd("b", "a"), fd("c", "b"), fd("d", "c"), fd("e")]
        with pytest.raises(DependencyCycleError) as exc_info:
            resolver.validate(fields)
        assert set(exc_info.value.cycle) == {"a", "b", "c", "d"}

    def test_cycle_error_is_field_validation_error(self, resolver):
        with pytest.raises(FieldValidationError):
            resolver.validate([fd("a", "b"), fd("b", "a")])

    def test_unknown_columns_skip_reference_check(self, resolver):
        resolver.validate([fd("industry", "company_name")], known_columns=None)

    def test_unknown_columns_still_reject_cycles(self, resolver):
        with pytest.raises(DependencyCycleError):
            resolver.validate([fd("a", "b"), fd("b", "a")], known_columns=None)


# -- ordering --------------------------------------------------------------


class TestProcessingOrder:
    def test_raw_dependents_first(self, resolver):
        fields = [fd("summary", "industry"), fd("industry", "company"), fd("website")]
        order = [f.name for f in resolver.processing_order(fields)]
        assert order == ["industry", "website", "summary"]

    def test_request_order_kept_within_level(self, resolver):
        fields = [fd("c"), fd("a"), fd("b")]
        assert [f.name for f in resolver.processing_order(fields)] == ["c", "a", "b"]

    def test_levels(self, resolver):
        fields = [fd("d", "b", "c"), fd("b", "a"), fd("c", "a"), fd("a")]
        assert resolver.execution_levels(fields) == [["a"], ["b", "c"], ["d"]]

    def test_repeated_dependency_counted_once(self, resolver):
        fields = [fd("b", "a", "a"), fd("a")]
        assert resolver.execution_levels(fields) == [["a"], ["b"]]

    def test_unvalidated_cycle_raises_cycle_error(self, resolver):
        fields = [fd("a", "b"), fd("b", "a"), fd("c")]
        with pytest.raises(DependencyCycleError) as exc_info:
            resolver.execution_levels(fields)
        assert set(exc_info.value.cycle) == {"a", "b"}
