"""Tests for strategy code generation.

This module tests:
1. The success/failure contract of generate_code
2. Generated module structure (parsed with ast)
3. Position modes, mirroring and parameters in the output
4. Error kinds for invalid documents
5. Determinism
"""

import ast

import pytest

from strategy_compiler.codegen.engine import TemplateEngine
from strategy_compiler.codegen.errors import ErrorKind, SchemaError
from strategy_compiler.codegen.generator import (
    CodeGenResult,
    StrategyCodeGenerator,
    check_unique_node_ids,
    generate_code,
)
from strategy_compiler.core.config import Config, LimitsConfig, OutputConfig
from strategy_compiler.schemas import StrategyDocument


def strategy_class(code):
    tree = ast.parse(code)
    return next(node for node in tree.body if isinstance(node, ast.ClassDef))


def class_attributes(code):
    """Literal class attributes of the generated strategy."""
    attributes = {}
    for node in strategy_class(code).body:
        if isinstance(node, ast.Assign) and isinstance(node.targets[0], ast.Name):
            attributes[node.targets[0].id] = ast.literal_eval(node.value)
    return attributes


def method_source(code, name):
    method = next(
        node
        for node in strategy_class(code).body
        if isinstance(node, ast.FunctionDef) and node.name == name
    )
    return ast.get_source_segment(code, method)


# =============================================================================
# TEST RESULT CONTRACT
# =============================================================================


class TestResultContract:
    """Test that exactly one of code and error is set."""

    def test_success(self, legacy_document):
        """Test a valid document produces code and no error."""
        result = generate_code(legacy_document, "RsiDip")
        assert result.success
        assert result.code is not None
        assert result.error is None
        assert result.error_kind is None

    def test_failure(self):
        """Test an invalid document produces an error and no code."""
        result = generate_code({"version": 2}, "RsiDip")
        assert not result.success
        assert result.code is None
        assert result.error.startswith("SchemaError: ")
        assert result.error_kind is ErrorKind.SCHEMA

    def test_non_mapping_document(self):
        """Test garbage input fails cleanly."""
        result = generate_code("not a document", "RsiDip")
        assert not result.success
        assert result.error_kind is ErrorKind.SCHEMA

    def test_to_dict(self, legacy_document):
        """Test serialization of a result."""
        data = generate_code(legacy_document, "RsiDip").to_dict()
        assert data["success"] is True
        assert data["error_kind"] is None
        assert data["warnings"] == []

    def test_to_dict_warning_format(self):
        """Test warnings serialize with their type name."""
        result = CodeGenResult(success=True, code="", warnings=[UserWarning("careful")])
        assert result.to_dict()["warnings"] == ["UserWarning: careful"]

    def test_internal_error_reported(self, legacy_document):
        """Test unexpected exceptions become internal errors."""

        class BrokenEngine(TemplateEngine):
            def render(self, context, template_name="strategy.py.j2"):
                raise RuntimeError("boom")

        generator = StrategyCodeGenerator(engine=BrokenEngine())
        result = generator.generate(legacy_document, "RsiDip")
        assert not result.success
        assert result.error == "InternalError: boom"
        assert result.error_kind is ErrorKind.INTERNAL


# =============================================================================
# TEST GENERATED MODULE
# =============================================================================


class TestGeneratedModule:
    """Test the structure of generated strategies."""

    def test_parses_and_names_class(self, legacy_document):
        """Test the module parses and defines the requested IStrategy subclass."""
        code = generate_code(legacy_document, "RsiDip").code
        cls = strategy_class(code)
        assert cls.name == "RsiDip"
        assert [base.id for base in cls.bases] == ["IStrategy"]

    def test_required_methods(self, legacy_document):
        """Test the three populate methods are defined."""
        code = generate_code(legacy_document, "RsiDip").code
        methods = {n.name for n in strategy_class(code).body if isinstance(n, ast.FunctionDef)}
        assert {"populate_indicators", "populate_entry_trend", "populate_exit_trend"} <= methods
        assert "leverage" not in methods

    def test_imports(self, legacy_document):
        """Test only needed optional imports are emitted."""
        code = generate_code(legacy_document, "RsiDip").code
        assert "from freqtrade.strategy import IStrategy" in code
        assert "import talib.abstract as ta" in code
        assert "qtpylib" not in code
        assert "ZoneInfo" not in code

    def test_qtpylib_import_for_crossings(self, canonical_document):
        """Test crossings pull in qtpylib."""
        code = generate_code(canonical_document, "EmaCross").code
        assert "from technical import qtpylib" in code

    def test_class_attributes(self, legacy_document):
        """Test parameters land on the class."""
        attributes = class_attributes(generate_code(legacy_document, "RsiDip").code)
        assert attributes["INTERFACE_VERSION"] == 3
        assert attributes["timeframe"] == "1h"
        assert attributes["can_short"] is False
        assert attributes["stoploss"] == -0.05
        assert attributes["minimal_roi"] == {"0": 0.10}
        assert attributes["startup_candle_count"] == 14

    def test_roi_sorted_by_minutes(self, canonical_document):
        """Test minimal_roi entries are ordered numerically."""
        canonical_document["parameters"]["minimal_roi"] = {"120": 0.0, "30": 0.02, "0": 0.05}
        code = generate_code(canonical_document, "EmaCross").code
        assert code.index("'0': 0.05") < code.index("'30': 0.02") < code.index("'120': 0.0")

    def test_trailing_stop(self, legacy_document):
        """Test trailing settings are emitted when set."""
        legacy_document["parameters"].update(
            {
                "trailing_stop": True,
                "trailing_stop_positive": 0.01,
                "trailing_stop_positive_offset": 0.02,
            }
        )
        attributes = class_attributes(generate_code(legacy_document, "RsiDip").code)
        assert attributes["trailing_stop"] is True
        assert attributes["trailing_stop_positive"] == 0.01
        assert attributes["trailing_only_offset_is_reached"] is True

    def test_default_timeframe(self, legacy_document):
        """Test the configured timeframe applies when the document has none."""
        del legacy_document["parameters"]["timeframe"]
        config = Config(output=OutputConfig(default_timeframe="15m"))
        attributes = class_attributes(generate_code(legacy_document, "RsiDip", config).code)
        assert attributes["timeframe"] == "15m"

    def test_startup_override(self, legacy_document):
        """Test an explicit startup_candle_count wins over the computed warmup."""
        legacy_document["parameters"]["startup_candle_count"] = 400
        attributes = class_attributes(generate_code(legacy_document, "RsiDip").code)
        assert attributes["startup_candle_count"] == 400

    def test_indicator_lines(self, legacy_document):
        """Test populate_indicators computes each declared indicator."""
        code = generate_code(legacy_document, "RsiDip").code
        source = method_source(code, "populate_indicators")
        assert "dataframe['rsi_14'] = ta.RSI(dataframe['close'], timeperiod=14)" in source

    def test_long_only_entry(self, legacy_document):
        """Test legacy documents only set long columns."""
        code = generate_code(legacy_document, "RsiDip").code
        entry = method_source(code, "populate_entry_trend")
        exit_ = method_source(code, "populate_exit_trend")
        assert "dataframe.loc[(dataframe['rsi_14'] < 30), 'enter_long'] = 1" in entry
        assert "'enter_short'" not in entry
        assert "dataframe.loc[(dataframe['rsi_14'] > 70), 'exit_long'] = 1" in exit_

    def test_long_and_short(self, canonical_document):
        """Test both directions are emitted and shorting enabled."""
        code = generate_code(canonical_document, "EmaCross").code
        entry = method_source(code, "populate_entry_trend")
        assert "'enter_long'" in entry
        assert "'enter_short'" in entry
        assert class_attributes(code)["can_short"] is True

    def test_short_only(self, canonical_document):
        """Test SHORT_ONLY emits only short columns."""
        canonical_document["position_mode"] = "SHORT_ONLY"
        code = generate_code(canonical_document, "EmaCross").code
        entry = method_source(code, "populate_entry_trend")
        assert "'enter_long'" not in entry
        assert "'enter_short'" in entry

    def test_missing_direction(self, canonical_document):
        """Test an enabled direction without signals is an error."""
        del canonical_document["short"]
        result = generate_code(canonical_document, "EmaCross")
        assert result.error == "SchemaError: position mode LONG_AND_SHORT requires short signals"

    def test_mirror_derives_short(self, canonical_document):
        """Test the mirrored short side replaces the authored one."""
        canonical_document["mirror_config"] = {"enabled": True, "source": "LONG"}
        code = generate_code(canonical_document, "EmaCross").code
        entry = method_source(code, "populate_entry_trend")
        assert "qtpylib.crossed_below(dataframe['ema_fast'], dataframe['ema_slow'])" in entry
        assert "(dataframe['rsi_14'] > 30)" in entry

    def test_leverage_method(self, leverage_document):
        """Test leverage rules produce a leverage callback."""
        code = generate_code(leverage_document, "LeveragedRsi").code
        source = method_source(code, "leverage")
        assert "# Overbought (priority 10)" in source
        assert "if (last_candle['rsi_14'] > 70):" in source
        assert "return min(5.0, max_leverage)" in source
        assert source.rstrip().endswith("return min(3.0, max_leverage)")

    def test_leverage_disabled(self, leverage_document):
        """Test disabled leverage settings produce no callback."""
        leverage_document["leverage"]["enabled"] = False
        code = generate_code(leverage_document, "LeveragedRsi").code
        assert "def leverage" not in code

    def test_leverage_cap(self, leverage_document):
        """Test max_leverage tightens the exchange maximum."""
        leverage_document["leverage"]["max_leverage"] = 4
        code = generate_code(leverage_document, "LeveragedRsi").code
        assert "max_leverage = min(max_leverage, 4.0)" in code

    def test_wrapped_document(self, legacy_document):
        """Test ui_builder wrappers are unwrapped."""
        result = generate_code({"timeframe": "4h", "ui_builder": legacy_document}, "RsiDip")
        assert result.success

    def test_deterministic(self, canonical_document):
        """Test identical input yields byte-identical output."""
        first = generate_code(canonical_document, "EmaCross").code
        second = generate_code(canonical_document, "EmaCross").code
        assert first == second

    def test_input_not_mutated(self, canonical_document, document_factory):
        """Test generation leaves the document untouched."""
        before = document_factory(canonical_document)
        canonical_document["mirror_config"] = {"enabled": True}
        before["mirror_config"] = {"enabled": True}
        generate_code(canonical_document, "EmaCross")
        assert canonical_document == before

    def test_labels_cannot_inject_code(self, leverage_document):
        """Test rule labels are neutralized inside comments."""
        leverage_document["leverage"]["rules"][0]["label"] = "x\nimport os\nos.system('rm')"
        code = generate_code(leverage_document, "LeveragedRsi").code
        assert "\nimport os" not in code


# =============================================================================
# TEST ERRORS
# =============================================================================


class TestErrors:
    """Test error kinds for invalid documents."""

    def test_undeclared_indicator(self, legacy_document):
        """Test an unknown indicator reference is a reference error."""
        legacy_document["indicators"] = []
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.REFERENCE
        assert result.error == "ReferenceError: indicator 'rsi_14' is not declared"

    def test_trade_context_in_signal(self, legacy_document):
        """Test trade context in an entry tree is a scope error."""
        legacy_document["entry_conditions"] = {
            "type": "COMPARE",
            "left": {"type": "TRADE_CONTEXT", "field": "current_profit"},
            "operator": "gt",
            "right": {"type": "CONSTANT", "value": 0.01},
        }
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.SCOPE
        assert result.error.startswith("ScopeError: ")

    def test_crossing_a_constant(self, legacy_document):
        """Test crossing a constant is a type error."""
        legacy_document["entry_conditions"] = {
            "type": "CROSSOVER",
            "series1": {"type": "INDICATOR", "indicator_id": "rsi_14"},
            "series2": {"type": "CONSTANT", "value": 30},
        }
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.TYPE
        assert result.error.startswith("TypeError: ")

    @pytest.mark.parametrize("value", ["abc", None, True])
    def test_ordering_against_non_number(self, legacy_document, value):
        """Test an entry threshold that is not a number is a type error."""
        legacy_document["entry_conditions"]["children"][0]["right"]["value"] = value
        result = generate_code(legacy_document, "RsiDip")
        assert not result.success
        assert result.code is None
        assert result.error_kind is ErrorKind.TYPE
        assert "'lt' needs numeric operands" in result.error

    def test_leverage_ordering_against_string(self, leverage_document):
        """Test leverage conditions are type-checked the same way."""
        leverage_document["leverage"]["rules"][0]["condition"]["right"]["value"] = "70"
        result = generate_code(leverage_document, "LeveragedRsi")
        assert result.error_kind is ErrorKind.TYPE

    def test_unknown_node_type(self, legacy_document):
        """Test an unknown tag is a schema error with its location."""
        legacy_document["entry_conditions"] = {"type": "XOR", "children": []}
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.SCHEMA
        assert "long.entry_conditions" in result.error

    def test_external_operand(self, legacy_document):
        """Test reserved operands fail as not implemented."""
        legacy_document["entry_conditions"] = {
            "type": "COMPARE",
            "left": {"type": "EXTERNAL", "source": "funding"},
            "operator": "gt",
            "right": {"type": "CONSTANT", "value": 0},
        }
        result = generate_code(legacy_document, "RsiDip")
        assert result.error == "SchemaError: EXTERNAL operands are not implemented"

    def test_invalid_indicator_param(self, legacy_document):
        """Test bad indicator parameters name the declaration."""
        legacy_document["indicators"][0]["params"] = {"period": -5}
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.SCHEMA
        assert "rsi_14" in result.error

    def test_duplicate_node_ids(self, canonical_document):
        """Test node ids must be unique across directions."""
        canonical_document["short"]["entry_conditions"]["id"] = "long_rsi"
        result = generate_code(canonical_document, "EmaCross")
        assert result.error == "SchemaError: duplicate condition node id 'long_rsi'"

    def test_size_limit(self, legacy_document):
        """Test oversized documents are rejected before parsing."""
        config = Config(limits=LimitsConfig(max_nodes=5))
        result = generate_code(legacy_document, "RsiDip", config)
        assert result.error_kind is ErrorKind.SIZE_LIMIT

    def test_oversized_constant_list(self, legacy_document):
        """Test an in-list too large for the ceiling fails without generating code."""
        legacy_document["entry_conditions"]["children"][0]["operator"] = "in"
        legacy_document["entry_conditions"]["children"][0]["right"]["value"] = list(
            range(2_000_000)
        )
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.SIZE_LIMIT
        assert result.code is None

    def test_deep_document(self, legacy_document):
        """Test pathological nesting is rejected without recursion errors."""
        tree = {"type": "AND", "children": []}
        for _ in range(5000):
            tree = {"type": "NOT", "child": tree}
        legacy_document["entry_conditions"] = tree
        result = generate_code(legacy_document, "RsiDip")
        assert result.error_kind is ErrorKind.SIZE_LIMIT


# =============================================================================
# TEST CLASS NAMES
# =============================================================================


class TestClassNames:
    """Test validation of the target class name."""

    @pytest.mark.parametrize("name", ["rsiDip", "Rsi Dip", "Rsi_Dip", "1Rsi", ""])
    def test_invalid_names(self, legacy_document, name):
        """Test names that are not PascalCase identifiers are rejected."""
        result = generate_code(legacy_document, name)
        assert result.error_kind is ErrorKind.SCHEMA

    @pytest.mark.parametrize("name", ["IStrategy", "DataFrame", "None", "True"])
    def test_reserved_names(self, legacy_document, name):
        """Test names that shadow imports or keywords are rejected."""
        result = generate_code(legacy_document, name)
        assert result.error == f"SchemaError: class name '{name}' is reserved"

    def test_too_long(self, legacy_document):
        """Test overlong names are rejected."""
        result = generate_code(legacy_document, "A" * 101)
        assert result.error == "SchemaError: class name must be at most 100 characters"

    def test_non_string(self, legacy_document):
        """Test a missing name is rejected."""
        result = generate_code(legacy_document, None)
        assert result.error == "SchemaError: class name is required"


# =============================================================================
# TEST NODE IDS
# =============================================================================


class TestNodeIds:
    """Test node id uniqueness checks."""

    def test_ids_in_leverage_rules_counted(self, leverage_document, compare):
        """Test leverage rule conditions share the id namespace."""
        leverage_document["long"]["entry_conditions"] = compare("lt", 30, "dup")
        leverage_document["leverage"]["rules"][0]["condition"] = compare("gt", 70, "dup")
        document = StrategyDocument.model_validate(leverage_document)
        with pytest.raises(SchemaError, match="duplicate condition node id 'dup'"):
            check_unique_node_ids(document)

    def test_nodes_without_ids_ignored(self, leverage_document):
        """Test nodes without ids never clash."""
        check_unique_node_ids(StrategyDocument.model_validate(leverage_document))
