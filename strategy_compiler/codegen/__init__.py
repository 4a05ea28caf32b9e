"""Code generation for strategy builder documents.

This module compiles builder documents (expression trees over indicators and
market data) into Freqtrade-compatible strategy modules.

Key components:
- generate_code / StrategyCodeGenerator: Document in, CodeGenResult out
- normalize_document: Legacy flat documents to the canonical nested shape
- apply_mirror / mirror_condition: Derive one direction from the other
- DEFAULT_REGISTRY: Supported indicators and their code templates
- ExpressionEmitter: Condition and operand trees to Python expressions
- LeverageCompiler: Priority-ordered leverage rules to a callback
- TemplateEngine: Renders the strategy module with Jinja2
- CLI: Command-line interface for code generation

Example:
    >>> from strategy_compiler.codegen import generate_code
    >>> result = generate_code(document, "RsiDip")
    >>> if result.success:
    ...     print(result.code)
"""

from strategy_compiler.codegen.emitter import EmissionScope, Emitted, ExpressionEmitter
from strategy_compiler.codegen.engine import TemplateEngine
from strategy_compiler.codegen.errors import (
    CodeGenerationError,
    ErrorKind,
    IndicatorReferenceError,
    LeverageFallbackWarning,
    NotImplementedOperandError,
    OperandTypeError,
    SchemaError,
    ScopeError,
    SizeLimitError,
)
from strategy_compiler.codegen.filters import CUSTOM_FILTERS
from strategy_compiler.codegen.generator import (
    CodeGenResult,
    StrategyCodeGenerator,
    generate_code,
)
from strategy_compiler.codegen.indicators import (
    DEFAULT_REGISTRY,
    BoundIndicators,
    IndicatorRegistry,
    IndicatorSpec,
    ParamSpec,
)
from strategy_compiler.codegen.leverage import CompiledLeverage, LeverageCompiler, compile_leverage
from strategy_compiler.codegen.limits import check_document_limits
from strategy_compiler.codegen.mirror import (
    MirrorPolicy,
    apply_mirror,
    invert_operator,
    mirror_condition,
    mirror_signal_config,
)
from strategy_compiler.codegen.naming import name_to_class_name, validate_class_name
from strategy_compiler.codegen.normalizer import (
    DocumentShape,
    detect_shape,
    extract_builder_document,
    normalize_document,
)

__all__ = [
    # Entry point
    "CodeGenResult",
    "StrategyCodeGenerator",
    "generate_code",
    # Errors
    "CodeGenerationError",
    "ErrorKind",
    "IndicatorReferenceError",
    "LeverageFallbackWarning",
    "NotImplementedOperandError",
    "OperandTypeError",
    "SchemaError",
    "ScopeError",
    "SizeLimitError",
    # Pipeline stages
    "check_document_limits",
    "DocumentShape",
    "detect_shape",
    "extract_builder_document",
    "normalize_document",
    "MirrorPolicy",
    "apply_mirror",
    "invert_operator",
    "mirror_condition",
    "mirror_signal_config",
    "DEFAULT_REGISTRY",
    "BoundIndicators",
    "IndicatorRegistry",
    "IndicatorSpec",
    "ParamSpec",
    "EmissionScope",
    "Emitted",
    "ExpressionEmitter",
    "CompiledLeverage",
    "LeverageCompiler",
    "compile_leverage",
    "name_to_class_name",
    "validate_class_name",
    # Rendering
    "TemplateEngine",
    "CUSTOM_FILTERS",
]
