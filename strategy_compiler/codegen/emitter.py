"""Expression emitter: condition and operand trees to Python source text.

Two scopes are supported:

- ``SERIES``: vectorised pandas expressions over ``dataframe`` for the
  ``populate_*_trend`` methods. Conditions evaluate to boolean Series.
- ``LEVERAGE``: scalar expressions inside the ``leverage`` callback, reading
  the last analysed candles and the trade context arguments.

Traversal uses an explicit stack with a depth counter; every node kind is
dispatched through a table keyed by the closed enums, and an unknown tag is a
SchemaError. The first error aborts emission.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from strategy_compiler.codegen.errors import (
    NotImplementedOperandError,
    OperandTypeError,
    SchemaError,
    ScopeError,
    SizeLimitError,
)
from strategy_compiler.codegen.filters import python_literal
from strategy_compiler.codegen.indicators import BoundIndicators
from strategy_compiler.schemas.common import (
    ComparisonOperator,
    ComputedOperation,
    NodeType,
    OperandType,
    PriceField,
    TimeField,
    TradeContextField,
)
from strategy_compiler.schemas.expression import CONDITION_CLASSES, child_nodes


class EmissionScope(str, Enum):
    """Where the emitted expression will run."""

    SERIES = "series"
    LEVERAGE = "leverage"


@dataclass(frozen=True)
class Emitted:
    """Source text for one node plus what the caller needs to know about it.

    Attributes:
        text: Python expression
        series: Evaluates to a pandas Series (series scope only)
        market: Derived from market data (indicator or price columns)
        prev: Same expression one candle earlier, for crossings
        lookback: Candles of history the text reads
        prev_lookback: Candles of history ``prev`` reads
        is_list: A list literal (only legal on the right of in/not_in)
        numeric: Usable in arithmetic
    """

    text: str
    series: bool = False
    market: bool = False
    prev: Optional[str] = None
    lookback: int = 0
    prev_lookback: int = 0
    is_list: bool = False
    numeric: bool = True


_TAGS: dict[str, Enum] = {
    **{t.value: t for t in NodeType},
    **{t.value: t for t in OperandType},
}

_COMPARE_SYMBOLS = {
    ComparisonOperator.EQ: "==",
    ComparisonOperator.NEQ: "!=",
    ComparisonOperator.GT: ">",
    ComparisonOperator.GTE: ">=",
    ComparisonOperator.LT: "<",
    ComparisonOperator.LTE: "<=",
}

_ORDERING_OPERATORS = frozenset(
    {
        ComparisonOperator.GT,
        ComparisonOperator.GTE,
        ComparisonOperator.LT,
        ComparisonOperator.LTE,
    }
)

_PRICE_COMPOSITES = {
    PriceField.HL2: ("high", "low"),
    PriceField.HLC3: ("high", "low", "close"),
    PriceField.OHLC4: ("open", "high", "low", "close"),
}

_SERIES_TIME = {
    TimeField.HOUR: "{base}.dt.hour",
    TimeField.MINUTE: "{base}.dt.minute",
    TimeField.DAY_OF_WEEK: "{base}.dt.dayofweek",
    TimeField.DAY_OF_MONTH: "{base}.dt.day",
    TimeField.MONTH: "{base}.dt.month",
    TimeField.IS_WEEKEND: "({base}.dt.dayofweek >= 5)",
}

_CALLBACK_TIME = {
    TimeField.HOUR: "{base}.hour",
    TimeField.MINUTE: "{base}.minute",
    TimeField.DAY_OF_WEEK: "{base}.weekday()",
    TimeField.DAY_OF_MONTH: "{base}.day",
    TimeField.MONTH: "{base}.month",
    TimeField.IS_WEEKEND: "({base}.weekday() >= 5)",
}

# Names available inside the generated leverage() method
LEVERAGE_CONTEXT = {
    TradeContextField.PAIR: ("pair", False),
    TradeContextField.SIDE: ("side", False),
    TradeContextField.IS_SHORT: ("is_short", True),
    TradeContextField.CURRENT_RATE: ("current_rate", True),
    TradeContextField.PROPOSED_LEVERAGE: ("proposed_leverage", True),
    TradeContextField.MAX_LEVERAGE: ("max_leverage", True),
    TradeContextField.ENTRY_TAG: ("entry_tag", False),
}


def _join(texts: list[str], symbol: str) -> str:
    return "(" + f" {symbol} ".join(texts) + ")"


class ExpressionEmitter:
    """Emit Python source for expression trees in one scope.

    Args:
        indicators: Bound indicator set used to resolve INDICATOR operands
        scope: Series (populate methods) or leverage (callback) scope
        max_depth: Deepest node nesting accepted

    Attributes:
        imports: Short names of imports the emitted text needs
            (``qtpylib``, ``zoneinfo``)
        lookback: Most candles of history any emitted text reads
    """

    def __init__(
        self,
        indicators: BoundIndicators,
        scope: EmissionScope = EmissionScope.SERIES,
        max_depth: int = 64,
    ):
        self.indicators = indicators
        self.scope = scope
        self.max_depth = max_depth
        self.imports: set[str] = set()
        self.lookback = 0
        self._handlers: dict[Enum, Callable[[BaseModel, list[Emitted]], Emitted]] = {
            NodeType.AND: self._emit_and,
            NodeType.OR: self._emit_or,
            NodeType.NOT: self._emit_not,
            NodeType.IF_THEN_ELSE: self._emit_if_then_else,
            NodeType.COMPARE: self._emit_compare,
            NodeType.CROSSOVER: self._emit_crossover,
            NodeType.CROSSUNDER: self._emit_crossunder,
            NodeType.IN_RANGE: self._emit_in_range,
            OperandType.CONSTANT: self._emit_constant,
            OperandType.INDICATOR: self._emit_indicator,
            OperandType.PRICE: self._emit_price,
            OperandType.TRADE_CONTEXT: self._emit_trade_context,
            OperandType.TIME: self._emit_time,
            OperandType.COMPUTED: self._emit_computed,
            OperandType.EXTERNAL: self._not_implemented,
            OperandType.CUSTOM: self._not_implemented,
        }

    @property
    def series_scope(self) -> bool:
        return self.scope is EmissionScope.SERIES

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def emit_condition(self, node: BaseModel) -> Emitted:
        """Emit a condition tree.

        In series scope the result is always a boolean Series expression;
        scalar results are broadcast over the dataframe index.

        Raises:
            CodeGenerationError: On the first invalid node
        """
        if not isinstance(node, CONDITION_CLASSES):
            raise SchemaError(f"expected a condition node, got {getattr(node, 'type', node)!r}")
        result = self._walk(node)
        if self.series_scope and not result.series:
            result = Emitted(
                text=f"pd.Series({result.text}, index=dataframe.index)",
                series=True,
                lookback=result.lookback,
                numeric=False,
            )
        return result

    def emit_operand(self, node: BaseModel) -> Emitted:
        """Emit a value-producing tree.

        Raises:
            CodeGenerationError: On the first invalid node
        """
        if isinstance(node, CONDITION_CLASSES):
            raise SchemaError(f"expected an operand, got condition {node.type}")
        result = self._walk(node)
        if result.is_list:
            raise OperandTypeError("a list constant cannot be used as a value")
        return result

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    def _walk(self, root: BaseModel) -> Emitted:
        results: list[Emitted] = []
        stack: list[tuple[BaseModel, int, bool]] = [(root, 1, False)]
        while stack:
            node, depth, expanded = stack.pop()
            children = child_nodes(node)
            if not expanded:
                if depth > self.max_depth:
                    raise SizeLimitError(f"expression nesting exceeds depth {self.max_depth}")
                self._handler_for(node)
                stack.append((node, depth, True))
                stack.extend((child, depth + 1, False) for child in reversed(children))
                continue

            if children:
                emitted = results[-len(children):]
                del results[-len(children):]
            else:
                emitted = []
            result = self._handler_for(node)(node, emitted)
            self.lookback = max(self.lookback, result.lookback)
            results.append(result)
        return results[0]

    def _handler_for(self, node: BaseModel) -> Callable[[BaseModel, list[Emitted]], Emitted]:
        tag = _TAGS.get(getattr(node, "type", None))
        handler = self._handlers.get(tag) if tag is not None else None
        if handler is None:
            raise SchemaError(f"unknown node type {getattr(node, 'type', None)!r}")
        return handler

    # =========================================================================
    # COLUMN ACCESS
    # =========================================================================

    def _candle(self, column: str, offset: int) -> str:
        if offset == 0:
            return f"last_candle[{column!r}]"
        if offset == 1:
            return f"prev_candle[{column!r}]"
        return f"dataframe[{column!r}].iat[-{offset + 1}]"

    def _column_at(self, column: str, offset: int) -> str:
        if self.series_scope:
            base = f"dataframe[{column!r}]"
            return f"{base}.shift({offset})" if offset else base
        return self._candle(column, offset)

    def _columns(self, columns: tuple[str, ...], offset: int) -> Emitted:
        def render(at: int) -> str:
            if len(columns) == 1:
                return self._column_at(columns[0], at)
            parts = " + ".join(self._column_at(c, at) for c in columns)
            return f"(({parts}) / {len(columns)})"

        if self.series_scope:
            return Emitted(
                text=render(offset),
                series=True,
                market=True,
                prev=render(offset + 1),
                lookback=offset,
                prev_lookback=offset + 1,
            )
        return Emitted(
            text=render(offset),
            market=True,
            prev=render(offset + 1),
            lookback=offset + 1,
            prev_lookback=offset + 2,
        )

    # =========================================================================
    # OPERANDS
    # =========================================================================

    def _not_implemented(self, node, children: list[Emitted]) -> Emitted:
        raise NotImplementedOperandError(f"{node.type} operands are not implemented")

    def _emit_constant(self, node, children: list[Emitted]) -> Emitted:
        value = node.value
        try:
            text = python_literal(value)
        except ValueError as e:
            raise SchemaError(f"invalid constant: {e}") from e
        is_list = isinstance(value, (list, tuple))
        numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        return Emitted(text=text, prev=text, is_list=is_list, numeric=numeric)

    def _emit_indicator(self, node, children: list[Emitted]) -> Emitted:
        column = self.indicators.column(node.indicator_id, node.field)
        return self._columns((column,), node.offset)

    def _emit_price(self, node, children: list[Emitted]) -> Emitted:
        columns = _PRICE_COMPOSITES.get(node.field, (node.field.value,))
        return self._columns(columns, node.offset)

    def _emit_trade_context(self, node, children: list[Emitted]) -> Emitted:
        if self.series_scope:
            raise ScopeError(
                f"TRADE_CONTEXT field '{node.field.value}' is only available in callbacks"
            )
        if node.field not in LEVERAGE_CONTEXT:
            raise ScopeError(
                f"TRADE_CONTEXT field '{node.field.value}' is not available in the "
                "leverage callback (no open trade yet)"
            )
        name, numeric = LEVERAGE_CONTEXT[node.field]
        return Emitted(text=name, prev=name, numeric=numeric)

    def _emit_time(self, node, children: list[Emitted]) -> Emitted:
        if self.series_scope:
            base = "dataframe['date']"
            if node.timezone:
                base = f"{base}.dt.tz_convert({node.timezone!r})"
            text = _SERIES_TIME[node.field].format(base=base)
            return Emitted(text=text, series=True, prev=f"{text}.shift(1)")

        base = "current_time"
        if node.timezone:
            self.imports.add("zoneinfo")
            base = f"current_time.astimezone(ZoneInfo({node.timezone!r}))"
        text = _CALLBACK_TIME[node.field].format(base=base)
        return Emitted(text=text, prev=text)

    def _emit_computed(self, node, children: list[Emitted]) -> Emitted:
        for child in children:
            if not child.numeric:
                raise OperandTypeError(
                    f"COMPUTED '{node.operation.value}' needs numeric operands, got {child.text}"
                )
        texts = [c.text for c in children]
        prevs = [c.prev if c.prev is not None else c.text for c in children]
        return Emitted(
            text=self._arithmetic(node.operation, texts),
            series=any(c.series for c in children),
            market=any(c.market for c in children),
            prev=self._arithmetic(node.operation, prevs),
            lookback=max(c.lookback for c in children),
            prev_lookback=max(max(c.prev_lookback, c.lookback) for c in children),
        )

    def _arithmetic(self, operation: ComputedOperation, args: list[str]) -> str:
        if operation is ComputedOperation.ADD or operation is ComputedOperation.SUM:
            return _join(args, "+")
        if operation is ComputedOperation.SUB:
            return _join(args, "-")
        if operation is ComputedOperation.MUL:
            return _join(args, "*")
        if operation is ComputedOperation.DIV:
            return _join(args, "/")
        if operation is ComputedOperation.NEG:
            return f"(-{args[0]})"
        if operation is ComputedOperation.ABS:
            return f"np.abs({args[0]})"
        if operation is ComputedOperation.ROUND:
            return f"np.round({args[0]})"
        if operation is ComputedOperation.FLOOR:
            return f"np.floor({args[0]})"
        if operation is ComputedOperation.CEIL:
            return f"np.ceil({args[0]})"
        if operation is ComputedOperation.AVERAGE:
            return f"({_join(args, '+')} / {len(args)})"
        if operation is ComputedOperation.PERCENT_CHANGE:
            return f"(({args[0]} - {args[1]}) / {args[1]} * 100)"
        if operation in (ComputedOperation.MIN, ComputedOperation.MAX):
            name = operation.value
            if not self.series_scope:
                return f"{name}({', '.join(args)})"
            result = args[0]
            for arg in args[1:]:
                result = f"np.{name}imum({result}, {arg})"
            return result
        raise SchemaError(f"unknown COMPUTED operation {operation!r}")

    # =========================================================================
    # CONDITIONS
    # =========================================================================

    def _boolean(self, text: str, children: list[Emitted]) -> Emitted:
        return Emitted(
            text=text,
            series=any(c.series for c in children),
            lookback=max((c.lookback for c in children), default=0),
            numeric=False,
        )

    def _combine(self, children: list[Emitted], empty: bool, series_op: str, scalar_op: str) -> Emitted:
        if not children:
            if self.series_scope:
                return Emitted(
                    text=f"pd.Series({empty}, index=dataframe.index)", series=True, numeric=False
                )
            return Emitted(text=str(empty), numeric=False)
        if len(children) == 1:
            return children[0]
        symbol = series_op if self.series_scope else scalar_op
        return self._boolean(f" {symbol} ".join(f"({c.text})" for c in children), children)

    def _emit_and(self, node, children: list[Emitted]) -> Emitted:
        return self._combine(children, True, "&", "and")

    def _emit_or(self, node, children: list[Emitted]) -> Emitted:
        return self._combine(children, False, "|", "or")

    def _emit_not(self, node, children: list[Emitted]) -> Emitted:
        child = children[0]
        if self.series_scope and child.series:
            return self._boolean(f"~({child.text})", children)
        return self._boolean(f"(not ({child.text}))", children)

    def _emit_if_then_else(self, node, children: list[Emitted]) -> Emitted:
        condition, then = children[0], children[1]
        if len(children) > 2:
            otherwise = children[2]
        else:
            otherwise = Emitted(text="False", numeric=False)
        parts = [condition, then, otherwise]
        if self.series_scope and any(p.series for p in parts):
            return Emitted(
                text=(
                    f"pd.Series(np.where({condition.text}, {then.text}, {otherwise.text}), "
                    "index=dataframe.index)"
                ),
                series=True,
                lookback=max(p.lookback for p in parts),
                numeric=False,
            )
        return self._boolean(
            f"(({then.text}) if ({condition.text}) else ({otherwise.text}))", parts
        )

    def _emit_compare(self, node, children: list[Emitted]) -> Emitted:
        left, right = children
        if left.is_list:
            raise OperandTypeError("a list constant can only appear on the right of in/not_in")

        if node.operator in (ComparisonOperator.IN, ComparisonOperator.NOT_IN):
            if not right.is_list:
                raise OperandTypeError(
                    f"'{node.operator.value}' needs a list constant on the right, got {right.text}"
                )
            if self.series_scope and left.series:
                text = f"{left.text}.isin({right.text})"
                if node.operator is ComparisonOperator.NOT_IN:
                    text = f"~{text}"
            else:
                keyword = "in" if node.operator is ComparisonOperator.IN else "not in"
                text = f"({left.text} {keyword} {right.text})"
            return self._boolean(text, children)

        if right.is_list:
            raise OperandTypeError(
                f"'{node.operator.value}' cannot compare against a list constant"
            )
        if node.operator in _ORDERING_OPERATORS:
            for side, operand in (("left", left), ("right", right)):
                if not operand.numeric:
                    raise OperandTypeError(
                        f"'{node.operator.value}' needs numeric operands, {side} side is "
                        f"{operand.text}"
                    )
        symbol = _COMPARE_SYMBOLS[node.operator]
        return self._boolean(f"({left.text} {symbol} {right.text})", children)

    def _check_crossing(self, node, children: list[Emitted]) -> tuple[Emitted, Emitted]:
        first, second = children
        for name, operand in (("series1", first), ("series2", second)):
            if not operand.market:
                raise OperandTypeError(
                    f"{node.type} {name} must be a market series (INDICATOR, PRICE, "
                    f"or COMPUTED over them), got {operand.text}"
                )
        return first, second

    def _crossing(self, node, children: list[Emitted], above: bool) -> Emitted:
        first, second = self._check_crossing(node, children)
        if self.series_scope:
            self.imports.add("qtpylib")
            name = "crossed_above" if above else "crossed_below"
            return self._boolean(f"qtpylib.{name}({first.text}, {second.text})", children)

        before, after = ("<=", ">") if above else (">=", "<")
        text = (
            f"(({first.prev} {before} {second.prev}) and "
            f"({first.text} {after} {second.text}))"
        )
        lookback = max(first.lookback, second.lookback, first.prev_lookback, second.prev_lookback)
        return Emitted(text=text, lookback=lookback, numeric=False)

    def _emit_crossover(self, node, children: list[Emitted]) -> Emitted:
        return self._crossing(node, children, above=True)

    def _emit_crossunder(self, node, children: list[Emitted]) -> Emitted:
        return self._crossing(node, children, above=False)

    def _emit_in_range(self, node, children: list[Emitted]) -> Emitted:
        value, low, high = children
        for operand in children:
            if operand.is_list or not operand.numeric:
                raise OperandTypeError(f"IN_RANGE needs numeric operands, got {operand.text}")
        lower, upper = (">=", "<=") if node.inclusive else (">", "<")
        if self.series_scope:
            text = f"(({value.text} {lower} {low.text}) & ({value.text} {upper} {high.text}))"
        else:
            text = f"(({value.text} {lower} {low.text}) and ({value.text} {upper} {high.text}))"
        return self._boolean(text, children)
