"""Tests for document normalization and the size guard.

This module tests:
1. Shape detection for legacy and canonical documents
2. Legacy-to-canonical mapping and idempotence
3. ui_builder wrapper extraction
4. Size, depth, array and string ceilings on raw documents
"""

import pytest

from strategy_compiler.codegen.errors import SchemaError, SizeLimitError
from strategy_compiler.codegen.limits import check_document_limits
from strategy_compiler.codegen.normalizer import (
    DocumentShape,
    detect_shape,
    extract_builder_document,
    noop_condition,
    normalize_document,
)
from strategy_compiler.core.config import LimitsConfig


# =============================================================================
# TEST SHAPE DETECTION
# =============================================================================


class TestDetectShape:
    """Test classification of raw documents."""

    def test_legacy(self, legacy_document):
        """Test flat entry/exit keys mean legacy."""
        assert detect_shape(legacy_document) is DocumentShape.LEGACY

    def test_canonical(self, canonical_document):
        """Test nested long/short keys mean canonical."""
        assert detect_shape(canonical_document) is DocumentShape.CANONICAL

    def test_camel_case_legacy_keys(self):
        """Test camelCase flat keys are recognized."""
        assert detect_shape({"entryConditions": noop_condition()}) is DocumentShape.LEGACY

    def test_neither_shape_is_error(self):
        """Test a document without any signal trees is rejected."""
        with pytest.raises(SchemaError, match="neither"):
            detect_shape({"version": 2, "indicators": []})

    def test_version_two_with_flat_keys_is_error(self):
        """Test a version tag contradicting the structure is rejected."""
        with pytest.raises(SchemaError, match="must nest"):
            detect_shape({"version": 2, "entry_conditions": noop_condition()})

    def test_version_one_with_nested_keys_is_error(self):
        """Test version 1 documents cannot use long/short."""
        with pytest.raises(SchemaError, match="version 1"):
            detect_shape({"version": 1, "long": {}})

    def test_non_integer_version_is_error(self):
        """Test version must be an integer."""
        with pytest.raises(SchemaError, match="version must be an integer"):
            detect_shape({"version": "2", "long": {}})

    def test_non_mapping_is_error(self):
        """Test lists and scalars are not documents."""
        with pytest.raises(SchemaError, match="must be an object"):
            detect_shape([])


# =============================================================================
# TEST NORMALIZATION
# =============================================================================


class TestNormalizeDocument:
    """Test the legacy-to-canonical mapping."""

    def test_legacy_maps_to_long_only(self, legacy_document):
        """Test flat trees move under long and short never fires."""
        canonical = normalize_document(legacy_document)

        assert canonical["version"] == 2
        assert canonical["position_mode"] == "LONG_ONLY"
        assert canonical["long"]["entry_conditions"] == legacy_document["entry_conditions"]
        assert canonical["long"]["exit_conditions"] == legacy_document["exit_conditions"]
        assert canonical["short"] == {
            "entry_conditions": noop_condition(),
            "exit_conditions": noop_condition(),
        }
        assert "entry_conditions" not in canonical
        assert "exit_conditions" not in canonical

    def test_other_keys_preserved(self, legacy_document):
        """Test indicators and parameters carry over unchanged."""
        canonical = normalize_document(legacy_document)
        assert canonical["indicators"] == legacy_document["indicators"]
        assert canonical["parameters"] == legacy_document["parameters"]

    def test_missing_exit_becomes_noop(self):
        """Test a legacy document with only an entry tree gets a no-op exit."""
        canonical = normalize_document({"entry_conditions": {"type": "AND", "children": []}})
        assert canonical["long"]["exit_conditions"] == noop_condition()

    def test_canonical_unchanged(self, canonical_document):
        """Test canonical documents come back equal but not identical."""
        canonical = normalize_document(canonical_document)
        assert canonical == canonical_document
        assert canonical is not canonical_document

    @pytest.mark.parametrize("fixture_name", ["legacy_document", "canonical_document"])
    def test_idempotent(self, request, fixture_name):
        """Test normalizing twice equals normalizing once for both shapes."""
        once = normalize_document(request.getfixturevalue(fixture_name))
        assert detect_shape(once) is DocumentShape.CANONICAL
        assert normalize_document(once) == once

    def test_input_not_mutated(self, legacy_document, document_factory):
        """Test the input mapping is left untouched."""
        before = document_factory(legacy_document)
        normalize_document(legacy_document)
        assert legacy_document == before


# =============================================================================
# TEST WRAPPER EXTRACTION
# =============================================================================


class TestExtractBuilderDocument:
    """Test unwrapping of stored strategy configs."""

    def test_plain_document_passes_through(self, canonical_document):
        """Test documents without a wrapper are returned as-is."""
        assert extract_builder_document(canonical_document) is canonical_document

    def test_wrapper_unwrapped_with_timeframe(self, canonical_document):
        """Test the outer timeframe is carried into the parameters."""
        wrapped = {"timeframe": "15m", "ui_builder": canonical_document}
        builder = extract_builder_document(wrapped)
        assert builder["parameters"]["timeframe"] == "15m"
        assert builder["parameters"]["stoploss"] == -0.08
        assert "timeframe" not in canonical_document["parameters"]

    def test_builder_timeframe_wins(self, legacy_document):
        """Test an explicit builder timeframe is not overwritten."""
        builder = extract_builder_document({"timeframe": "15m", "ui_builder": legacy_document})
        assert builder["parameters"]["timeframe"] == "1h"

    def test_wrapper_without_builder(self):
        """Test a wrapper with a null ui_builder is rejected."""
        with pytest.raises(SchemaError, match="no ui_builder config found"):
            extract_builder_document({"ui_builder": None})


# =============================================================================
# TEST SIZE GUARD
# =============================================================================


class TestDocumentLimits:
    """Test the ceilings enforced before any other processing."""

    def test_stats(self):
        """Test containers, depth and string characters are measured."""
        stats = check_document_limits({"a": [1, {"bc": "xyz"}]})
        assert stats.containers == 3
        assert stats.depth == 3
        assert stats.string_chars == len("a") + len("bc") + len("xyz")

    def test_depth_limit(self):
        """Test nesting beyond max_depth is rejected without recursion."""
        document = {}
        for _ in range(10_000):
            document = {"child": document}
        with pytest.raises(SizeLimitError, match="depth"):
            check_document_limits(document)

    def test_node_limit(self):
        """Test too many containers are rejected."""
        limits = LimitsConfig(max_nodes=5)
        with pytest.raises(SizeLimitError, match="5 nodes"):
            check_document_limits({"items": [[] for _ in range(10)]}, limits)

    def test_list_items_counted(self):
        """Test scalar array elements are counted in the stats."""
        stats = check_document_limits({"values": [1, 2, 3], "nested": [[4], []]})
        assert stats.list_items == 3 + 2 + 1

    def test_list_item_limit(self):
        """Test a huge constant list is rejected before it is walked."""
        document = {
            "type": "COMPARE",
            "operator": "in",
            "right": {"type": "CONSTANT", "value": list(range(2_000_000))},
        }
        with pytest.raises(SizeLimitError, match="10000 items"):
            check_document_limits(document)

    def test_list_item_limit_is_total(self):
        """Test many small arrays add up against the same ceiling."""
        limits = LimitsConfig(max_list_items=10)
        with pytest.raises(SizeLimitError, match="10 items"):
            check_document_limits({"a": [1] * 6, "b": [2] * 6}, limits)

    def test_string_limit(self):
        """Test oversized strings are rejected."""
        limits = LimitsConfig(max_string_chars=10)
        with pytest.raises(SizeLimitError, match="10 characters"):
            check_document_limits({"label": "x" * 20}, limits)

    def test_non_json_value(self):
        """Test values JSON cannot carry are schema errors."""
        with pytest.raises(SchemaError, match="set"):
            check_document_limits({"ids": {1, 2}})

    def test_non_string_key(self):
        """Test integer keys are schema errors."""
        with pytest.raises(SchemaError, match="keys must be strings"):
            check_document_limits({1: "a"})
