"""Common types and enums shared across schemas."""

from enum import Enum


class NodeType(str, Enum):
    """Condition node variants."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    IF_THEN_ELSE = "IF_THEN_ELSE"
    COMPARE = "COMPARE"
    CROSSOVER = "CROSSOVER"
    CROSSUNDER = "CROSSUNDER"
    IN_RANGE = "IN_RANGE"


class OperandType(str, Enum):
    """Operand node variants."""

    CONSTANT = "CONSTANT"
    INDICATOR = "INDICATOR"
    PRICE = "PRICE"
    TRADE_CONTEXT = "TRADE_CONTEXT"
    TIME = "TIME"
    COMPUTED = "COMPUTED"
    EXTERNAL = "EXTERNAL"  # Reserved, not implemented
    CUSTOM = "CUSTOM"  # Reserved, not implemented


class ComparisonOperator(str, Enum):
    """Operators accepted by COMPARE nodes."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"


class ComputedOperation(str, Enum):
    """Arithmetic operations accepted by COMPUTED operands."""

    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MIN = "min"
    MAX = "max"
    ABS = "abs"
    NEG = "neg"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    PERCENT_CHANGE = "percent_change"
    AVERAGE = "average"
    SUM = "sum"


# Long-form operation names used by older builder documents
COMPUTED_OPERATION_ALIASES = {
    "subtract": ComputedOperation.SUB,
    "multiply": ComputedOperation.MUL,
    "divide": ComputedOperation.DIV,
    "negate": ComputedOperation.NEG,
    "avg": ComputedOperation.AVERAGE,
}


class PriceField(str, Enum):
    """Standard market columns and their derived composites."""

    OPEN = "open"
    HIGH = "high"
    LOW = "low"
    CLOSE = "close"
    VOLUME = "volume"
    HL2 = "hl2"  # (high + low) / 2
    HLC3 = "hlc3"  # (high + low + close) / 3
    OHLC4 = "ohlc4"  # (open + high + low + close) / 4


class TimeField(str, Enum):
    """Time components derivable from the candle date."""

    HOUR = "hour"
    MINUTE = "minute"
    DAY_OF_WEEK = "day_of_week"
    DAY_OF_MONTH = "day_of_month"
    MONTH = "month"
    IS_WEEKEND = "is_weekend"


class TradeContextField(str, Enum):
    """Execution-time trade state fields."""

    PAIR = "pair"
    SIDE = "side"
    IS_SHORT = "is_short"
    CURRENT_RATE = "current_rate"
    PROPOSED_LEVERAGE = "proposed_leverage"
    MAX_LEVERAGE = "max_leverage"
    ENTRY_TAG = "entry_tag"
    CURRENT_PROFIT = "current_profit"
    CURRENT_PROFIT_PCT = "current_profit_pct"
    ENTRY_RATE = "entry_rate"
    TRADE_DURATION = "trade_duration"
    NR_OF_ENTRIES = "nr_of_entries"
    STAKE_AMOUNT = "stake_amount"


class PositionMode(str, Enum):
    """Which trading directions a strategy enables."""

    LONG_ONLY = "LONG_ONLY"
    SHORT_ONLY = "SHORT_ONLY"
    LONG_AND_SHORT = "LONG_AND_SHORT"

    @property
    def trades_long(self) -> bool:
        return self in (PositionMode.LONG_ONLY, PositionMode.LONG_AND_SHORT)

    @property
    def trades_short(self) -> bool:
        return self in (PositionMode.SHORT_ONLY, PositionMode.LONG_AND_SHORT)


class SignalDirection(str, Enum):
    """A trading direction, used as the mirror source."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "SignalDirection":
        return SignalDirection.SHORT if self is SignalDirection.LONG else SignalDirection.LONG
