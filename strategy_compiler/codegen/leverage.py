"""Compile leverage rules into an always-terminating decision routine.

Enabled rules are stable-sorted by descending priority. Every conditional
rule becomes a guarded ``if`` branch in that order; the unconditional rule
(or the document's ``default_leverage``) is emitted last, without a guard.
When neither exists the configured fallback is used and a
:class:`LeverageFallbackWarning` is reported, so every path returns a value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from strategy_compiler.codegen.emitter import EmissionScope, ExpressionEmitter
from strategy_compiler.codegen.errors import LeverageFallbackWarning, OperandTypeError, SchemaError
from strategy_compiler.codegen.filters import python_literal, safe_comment
from strategy_compiler.codegen.indicators import BoundIndicators
from strategy_compiler.core.config import LeverageConfig
from strategy_compiler.schemas.document import LeverageExpression, LeverageRule, LeverageSettings
from strategy_compiler.schemas.expression import ConstantOperand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeverageBranch:
    """One ``return`` of the routine; ``condition`` is None for the tail."""

    value: str
    comment: str
    condition: Optional[str] = None


@dataclass(frozen=True)
class CompiledLeverage:
    """Template-ready leverage routine.

    Attributes:
        branches: Guarded branches in evaluation order
        default: Unconditional tail branch
        min_candles: Analysed candles the routine reads (0 = none)
        guard_value: Returned when fewer than ``min_candles`` are available
        cap: Optional extra ceiling on the exchange's max leverage
        imports: Short import names the expressions need
        fallback_used: No unconditional rule existed
        warnings: Non-fatal warnings to report with the result
    """

    branches: tuple[LeverageBranch, ...]
    default: LeverageBranch
    min_candles: int = 0
    guard_value: str = "1.0"
    cap: Optional[float] = None
    imports: frozenset[str] = frozenset()
    fallback_used: bool = False
    warnings: tuple[Warning, ...] = field(default_factory=tuple)

    @property
    def needs_dataframe(self) -> bool:
        return self.min_candles > 0

    @property
    def needs_prev_candle(self) -> bool:
        return self.min_candles > 1


def order_rules(rules: tuple[LeverageRule, ...]) -> list[LeverageRule]:
    """Enabled rules, highest priority first; ties keep document order."""
    return sorted((r for r in rules if r.enabled), key=lambda r: -r.priority)


def _rule_comment(rule: LeverageRule, index: int) -> str:
    name = safe_comment(rule.label or rule.id) or f"Rule {index + 1}"
    return f"{name} (priority {rule.priority})"


class LeverageCompiler:
    """Compiles a document's leverage settings in callback scope.

    Args:
        indicators: Bound indicators of the document
        config: Leverage settings from the compiler config
        max_depth: Deepest expression nesting accepted
    """

    def __init__(
        self,
        indicators: BoundIndicators,
        config: LeverageConfig | None = None,
        max_depth: int = 64,
    ):
        self.config = config or LeverageConfig()
        self._emitter = ExpressionEmitter(indicators, EmissionScope.LEVERAGE, max_depth)

    def _value(self, operand) -> tuple[str, int]:
        if isinstance(operand, LeverageExpression):
            text, lookback = self._value(operand.operand)
            if operand.max is not None:
                text = f"min({python_literal(float(operand.max))}, {text})"
            if operand.min is not None:
                text = f"max({python_literal(float(operand.min))}, {text})"
            return text, lookback
        if isinstance(operand, ConstantOperand):
            value = operand.value
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SchemaError(f"leverage must be a number, got {value!r}")
            if value <= 0:
                raise SchemaError(f"leverage must be positive, got {value!r}")
        emitted = self._emitter.emit_operand(operand)
        if not emitted.numeric:
            raise OperandTypeError(f"leverage value must be numeric, got {emitted.text}")
        return emitted.text, emitted.lookback

    def compile(self, settings: LeverageSettings) -> CompiledLeverage:
        """Build the routine for one document.

        Raises:
            SchemaError: If more than one enabled rule is unconditional
            CodeGenerationError: If a condition or value cannot be emitted
        """
        ordered = order_rules(settings.rules)
        unconditional = [r for r in ordered if r.condition is None]
        if len(unconditional) > 1:
            names = ", ".join(r.label or r.id or "?" for r in unconditional)
            raise SchemaError(
                f"only one leverage rule may be unconditional, found {len(unconditional)}: {names}"
            )

        branches: list[LeverageBranch] = []
        default: Optional[LeverageBranch] = None
        default_lookback = 0
        for index, rule in enumerate(ordered):
            value, value_lookback = self._value(rule.leverage)
            if rule.condition is None:
                default = LeverageBranch(value=value, comment=_rule_comment(rule, index))
                default_lookback = value_lookback
                continue
            condition = self._emitter.emit_condition(rule.condition)
            branches.append(
                LeverageBranch(
                    value=value,
                    comment=_rule_comment(rule, index),
                    condition=condition.text,
                )
            )

        warnings: list[Warning] = []
        fallback_used = False
        fallback = python_literal(float(self.config.fallback_leverage))
        if default is None and settings.default_leverage is not None:
            default = LeverageBranch(
                value=python_literal(float(settings.default_leverage)),
                comment="Default leverage",
            )
        if default is None:
            fallback_used = True
            default = LeverageBranch(
                value=fallback, comment="Fallback leverage (no unconditional rule)"
            )
            message = (
                "no unconditional leverage rule; generated code falls back to "
                f"{fallback}x leverage"
            )
            warnings.append(LeverageFallbackWarning(message))
            logger.warning(message)

        guard = default.value if default_lookback == 0 else fallback
        return CompiledLeverage(
            branches=tuple(branches),
            default=default,
            min_candles=self._emitter.lookback,
            guard_value=guard,
            cap=settings.max_leverage,
            imports=frozenset(self._emitter.imports),
            fallback_used=fallback_used,
            warnings=tuple(warnings),
        )


def compile_leverage(
    settings: LeverageSettings,
    indicators: BoundIndicators,
    config: LeverageConfig | None = None,
    max_depth: int = 64,
) -> CompiledLeverage:
    """Convenience wrapper around :class:`LeverageCompiler`."""
    return LeverageCompiler(indicators, config, max_depth).compile(settings)
