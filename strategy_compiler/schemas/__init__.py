"""Pydantic schemas for strategy builder documents."""

from strategy_compiler.schemas.common import (
    ComparisonOperator,
    ComputedOperation,
    NodeType,
    OperandType,
    PositionMode,
    PriceField,
    SignalDirection,
    TimeField,
    TradeContextField,
)
from strategy_compiler.schemas.document import (
    IndicatorDeclaration,
    LeverageExpression,
    LeverageRule,
    LeverageSettings,
    MirrorConfig,
    SignalConfig,
    StrategyDocument,
    StrategyParameters,
)
from strategy_compiler.schemas.expression import (
    AndNode,
    CompareNode,
    ComputedOperand,
    ConditionNode,
    ConstantOperand,
    CrossoverNode,
    CrossunderNode,
    CustomOperand,
    ExternalOperand,
    IfThenElseNode,
    IndicatorOperand,
    InRangeNode,
    NotNode,
    Operand,
    OrNode,
    PriceOperand,
    TimeOperand,
    TradeContextOperand,
    dump_node,
    iter_nodes,
    parse_condition,
    parse_operand,
)

__all__ = [
    # Enums
    "ComparisonOperator",
    "ComputedOperation",
    "NodeType",
    "OperandType",
    "PositionMode",
    "PriceField",
    "SignalDirection",
    "TimeField",
    "TradeContextField",
    # Expression tree
    "AndNode",
    "CompareNode",
    "ComputedOperand",
    "ConditionNode",
    "ConstantOperand",
    "CrossoverNode",
    "CrossunderNode",
    "CustomOperand",
    "ExternalOperand",
    "IfThenElseNode",
    "IndicatorOperand",
    "InRangeNode",
    "NotNode",
    "Operand",
    "OrNode",
    "PriceOperand",
    "TimeOperand",
    "TradeContextOperand",
    "dump_node",
    "iter_nodes",
    "parse_condition",
    "parse_operand",
    # Document
    "IndicatorDeclaration",
    "LeverageExpression",
    "LeverageRule",
    "LeverageSettings",
    "MirrorConfig",
    "SignalConfig",
    "StrategyDocument",
    "StrategyParameters",
]
