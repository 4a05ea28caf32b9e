"""Strategy Code Generator - compile builder documents into strategy modules.

This module is the single entry point used by collaborators:

    generate_code(document, target_name) -> CodeGenResult

Pipeline:
1. Size/depth ceiling on the raw document
2. Wrapper extraction and legacy-to-canonical normalization
3. Schema validation and node-id uniqueness
4. Mirroring (re-derived on every call)
5. Indicator binding, signal emission and leverage compilation
6. Template rendering and output validation

Any fatal error stops the pipeline; exactly one of ``code`` and ``error``
is set on the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from strategy_compiler.codegen.emitter import EmissionScope, ExpressionEmitter
from strategy_compiler.codegen.engine import TemplateEngine
from strategy_compiler.codegen.errors import CodeGenerationError, ErrorKind, SchemaError
from strategy_compiler.codegen.indicators import DEFAULT_REGISTRY, IndicatorRegistry
from strategy_compiler.codegen.leverage import CompiledLeverage, LeverageCompiler
from strategy_compiler.codegen.limits import check_document_limits
from strategy_compiler.codegen.mirror import apply_mirror
from strategy_compiler.codegen.naming import validate_class_name
from strategy_compiler.codegen.normalizer import extract_builder_document, normalize_document
from strategy_compiler.core.config import Config, get_default_config
from strategy_compiler.schemas.common import SignalDirection
from strategy_compiler.schemas.document import StrategyDocument
from strategy_compiler.schemas.expression import CONDITION_CLASSES, iter_nodes

logger = logging.getLogger(__name__)

SIGNAL_COLUMNS = {
    SignalDirection.LONG: ("enter_long", "exit_long"),
    SignalDirection.SHORT: ("enter_short", "exit_short"),
}


@dataclass
class CodeGenResult:
    """Result of strategy code generation."""

    success: bool
    code: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    warnings: list[Warning] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "code": self.code,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "warnings": [f"{type(w).__name__}: {w}" for w in self.warnings],
        }


def schema_error_from_validation(error: ValidationError) -> SchemaError:
    """Summarize a pydantic ValidationError as a SchemaError."""
    details = error.errors()
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "document"
    message = f"{location}: {first.get('msg', 'invalid value')}"
    if len(details) > 1:
        message += f" (and {len(details) - 1} more error(s))"
    return SchemaError(message)


def parse_document(document: dict[str, Any]) -> StrategyDocument:
    """Validate a canonical document mapping.

    Raises:
        SchemaError: If the mapping does not match the document schema
    """
    try:
        return StrategyDocument.model_validate(document)
    except ValidationError as e:
        raise schema_error_from_validation(e) from e


def check_unique_node_ids(document: StrategyDocument) -> None:
    """Condition node ids must be unique across the authored document.

    Raises:
        SchemaError: On the first repeated id
    """
    roots = []
    for signal in (document.long, document.short):
        if signal is not None:
            roots.extend((signal.entry_conditions, signal.exit_conditions))
    if document.leverage is not None:
        roots.extend(r.condition for r in document.leverage.rules if r.condition is not None)

    seen: set[str] = set()
    for root in roots:
        for node in iter_nodes(root):
            node_id = getattr(node, "id", None)
            if node_id is None or not isinstance(node, CONDITION_CLASSES):
                continue
            if node_id in seen:
                raise SchemaError(f"duplicate condition node id '{node_id}'")
            seen.add(node_id)


class StrategyCodeGenerator:
    """Compile builder documents into Freqtrade strategy modules.

    Instances hold only configuration, the indicator registry and a Jinja2
    environment; they can be shared between threads.
    """

    def __init__(
        self,
        config: Config | None = None,
        registry: IndicatorRegistry | None = None,
        engine: TemplateEngine | None = None,
    ):
        """Initialize the generator.

        Args:
            config: Compiler configuration; defaults when None
            registry: Indicator registry; the built-in registry when None
            engine: Template engine; the built-in templates when None
        """
        self.config = config or get_default_config()
        self.registry = registry or DEFAULT_REGISTRY
        self._engine = engine or TemplateEngine()

    def generate(self, document: Any, target_name: str) -> CodeGenResult:
        """Generate strategy code for a document.

        Args:
            document: Untrusted builder document (legacy or canonical shape,
                optionally wrapped under ``ui_builder``)
            target_name: Class name for the generated strategy

        Returns:
            CodeGenResult with generated code or a single error
        """
        logger.info(f"Generating strategy code for {target_name!r}")
        try:
            code, warnings = self._compile(document, target_name)
        except CodeGenerationError as e:
            logger.warning(f"Code generation failed for {target_name!r}: {e}")
            return CodeGenResult(success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected error generating {target_name!r}")
            return CodeGenResult(
                success=False,
                error=f"InternalError: {e}",
                error_kind=ErrorKind.INTERNAL,
            )

        logger.info(f"Generated {len(code.splitlines())} lines for {target_name!r}")
        return CodeGenResult(success=True, code=code, warnings=warnings)

    def prepare(self, document: Any) -> StrategyDocument:
        """Run the document stages of the pipeline (limits through mirroring).

        Raises:
            CodeGenerationError: On the first invalid input
        """
        check_document_limits(document, self.config.limits)
        canonical = normalize_document(extract_builder_document(document))
        parsed = parse_document(canonical)
        check_unique_node_ids(parsed)
        return apply_mirror(parsed)

    def _compile(self, document: Any, target_name: str) -> tuple[str, list[Warning]]:
        if not isinstance(target_name, str):
            raise SchemaError("class name is required")
        validate_class_name(target_name, self.config.limits.max_class_name_length)

        strategy = self.prepare(document)
        mode = strategy.position_mode
        enabled = [
            direction
            for direction, on in (
                (SignalDirection.LONG, mode.trades_long),
                (SignalDirection.SHORT, mode.trades_short),
            )
            if on
        ]

        indicators = self.registry.bind(strategy.indicators)
        emitter = ExpressionEmitter(
            indicators, EmissionScope.SERIES, self.config.limits.max_depth
        )

        entry_signals = []
        exit_signals = []
        for direction in enabled:
            signal = strategy.signal_for(direction)
            if signal is None:
                raise SchemaError(
                    f"position mode {mode.value} requires {direction.value.lower()} signals"
                )
            enter_column, exit_column = SIGNAL_COLUMNS[direction]
            entry_signals.append(
                {"column": enter_column, "mask": emitter.emit_condition(signal.entry_conditions).text}
            )
            exit_signals.append(
                {"column": exit_column, "mask": emitter.emit_condition(signal.exit_conditions).text}
            )

        leverage: CompiledLeverage | None = None
        warnings: list[Warning] = []
        if strategy.leverage is not None and strategy.leverage.enabled:
            leverage = LeverageCompiler(
                indicators, self.config.leverage, self.config.limits.max_depth
            ).compile(strategy.leverage)
            warnings.extend(leverage.warnings)

        context = self._build_context(
            strategy, target_name, indicators, emitter, entry_signals, exit_signals, leverage
        )
        code = self._engine.render(context)

        if self.config.output.validate_syntax:
            problems = self._engine.validate_output(code, target_name)
            if problems:
                raise CodeGenerationError("generated code failed validation: " + "; ".join(problems))
        return code, warnings

    def _build_context(
        self,
        strategy: StrategyDocument,
        class_name: str,
        indicators,
        emitter: ExpressionEmitter,
        entry_signals: list[dict[str, str]],
        exit_signals: list[dict[str, str]],
        leverage: CompiledLeverage | None,
    ) -> dict[str, Any]:
        """Build the template context.

        Returns:
            Dictionary of template variables
        """
        params = strategy.parameters
        imports = indicators.imports() | emitter.imports
        if leverage is not None:
            imports |= leverage.imports

        warmup = max(indicators.warmup(), emitter.lookback)
        if leverage is not None:
            warmup = max(warmup, leverage.min_candles)
        startup = params.startup_candle_count if params.startup_candle_count is not None else warmup

        return {
            "class_name": class_name,
            "uses_talib": "talib" in imports,
            "uses_qtpylib": "qtpylib" in imports,
            "uses_zoneinfo": "zoneinfo" in imports,
            "timeframe": params.timeframe or self.config.output.default_timeframe,
            "can_short": strategy.position_mode.trades_short,
            "stoploss": params.stoploss,
            "minimal_roi": sorted(params.minimal_roi.items(), key=lambda item: int(item[0])),
            "trailing_stop": params.trailing_stop,
            "trailing_stop_positive": params.trailing_stop_positive,
            "trailing_stop_positive_offset": params.trailing_stop_positive_offset,
            "use_exit_signal": params.use_exit_signal,
            "startup_candle_count": startup,
            "indicator_lines": indicators.code_lines(),
            "entry_signals": entry_signals,
            "exit_signals": exit_signals,
            "leverage": leverage,
        }


def generate_code(
    document: Any,
    target_name: str,
    config: Config | None = None,
) -> CodeGenResult:
    """Convenience function to generate strategy code.

    Args:
        document: Builder document (legacy or canonical shape)
        target_name: Class name for the generated strategy
        config: Optional compiler configuration

    Returns:
        CodeGenResult
    """
    return StrategyCodeGenerator(config).generate(document, target_name)
