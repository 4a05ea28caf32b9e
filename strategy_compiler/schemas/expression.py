"""Expression tree schemas: operand (value) nodes and condition (boolean) nodes.

Both trees are closed tagged unions discriminated on the ``type`` key, so an
unknown or missing tag fails validation instead of falling through to a
default. All models are frozen; transformations build new trees.

Example:
    >>> from strategy_compiler.schemas.expression import parse_condition
    >>> node = parse_condition({
    ...     "type": "COMPARE",
    ...     "left": {"type": "INDICATOR", "indicator_id": "rsi_14"},
    ...     "operator": "lt",
    ...     "right": {"type": "CONSTANT", "value": 30},
    ... })
    >>> node.operator
    <ComparisonOperator.LT: 'lt'>
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Iterator, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from strategy_compiler.schemas.common import (
    COMPUTED_OPERATION_ALIASES,
    ComparisonOperator,
    ComputedOperation,
    PriceField,
    TimeField,
    TradeContextField,
)

FROZEN_MODEL_CONFIG = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

Scalar = Union[bool, int, float, str, None]

# Operand counts per operation: (minimum, maximum or None for unbounded)
COMPUTED_ARITY: dict[ComputedOperation, tuple[int, Optional[int]]] = {
    ComputedOperation.ADD: (2, None),
    ComputedOperation.SUB: (2, 2),
    ComputedOperation.MUL: (2, None),
    ComputedOperation.DIV: (2, 2),
    ComputedOperation.MIN: (2, None),
    ComputedOperation.MAX: (2, None),
    ComputedOperation.ABS: (1, 1),
    ComputedOperation.NEG: (1, 1),
    ComputedOperation.ROUND: (1, 1),
    ComputedOperation.FLOOR: (1, 1),
    ComputedOperation.CEIL: (1, 1),
    ComputedOperation.PERCENT_CHANGE: (2, 2),
    ComputedOperation.AVERAGE: (1, None),
    ComputedOperation.SUM: (1, None),
}


# =============================================================================
# OPERAND NODES
# =============================================================================


class ConstantOperand(BaseModel):
    """A literal value. Lists are only meaningful on the right of in/not_in."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["CONSTANT"] = "CONSTANT"
    value: Union[Scalar, list[Scalar]] = None

    @field_validator("value")
    @classmethod
    def reject_non_finite(cls, v: Any) -> Any:
        """NaN and infinities have no literal form in generated code."""
        items = v if isinstance(v, list) else [v]
        for item in items:
            if isinstance(item, float) and not math.isfinite(item):
                raise ValueError(f"constant must be finite, got {item!r}")
        return v


class IndicatorOperand(BaseModel):
    """Reference to a declared indicator instance, optionally one named output."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["INDICATOR"] = "INDICATOR"
    indicator_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("indicator_id", "indicatorId"),
        description="Id of an IndicatorDeclaration in the same document",
    )
    field: Optional[str] = Field(None, description="Named output for multi-output indicators")
    offset: int = Field(0, ge=0, le=500, description="Bars back from the current candle")


class PriceOperand(BaseModel):
    """Reference to a standard market column."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["PRICE"] = "PRICE"
    field: PriceField = PriceField.CLOSE
    offset: int = Field(0, ge=0, le=500)


class TradeContextOperand(BaseModel):
    """Execution-time trade state, only legal in callback scope."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["TRADE_CONTEXT"] = "TRADE_CONTEXT"
    field: TradeContextField


class TimeOperand(BaseModel):
    """A component of the candle (or callback) timestamp."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["TIME"] = "TIME"
    field: TimeField
    timezone: Optional[str] = Field(None, description="IANA zone name; UTC when absent")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v in ("", "UTC"):
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {v!r}") from e
        return v


class ComputedOperand(BaseModel):
    """Arithmetic over nested operands."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["COMPUTED"] = "COMPUTED"
    operation: ComputedOperation
    operands: tuple["Operand", ...] = ()

    @field_validator("operation", mode="before")
    @classmethod
    def resolve_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = v.strip().lower()
            return COMPUTED_OPERATION_ALIASES.get(key, key)
        return v

    @model_validator(mode="after")
    def check_arity(self) -> "ComputedOperand":
        low, high = COMPUTED_ARITY[self.operation]
        count = len(self.operands)
        if count < low or (high is not None and count > high):
            if high is None:
                expected = f"at least {low}"
            else:
                expected = str(low) if low == high else f"{low}-{high}"
            raise ValueError(
                f"operation '{self.operation.value}' takes {expected} operand(s), got {count}"
            )
        return self


class ExternalOperand(BaseModel):
    """Reserved extension point for external data feeds."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["EXTERNAL"] = "EXTERNAL"
    source: Optional[str] = None


class CustomOperand(BaseModel):
    """Reserved extension point for user-supplied code."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["CUSTOM"] = "CUSTOM"
    name: Optional[str] = None


Operand = Annotated[
    Union[
        ConstantOperand,
        IndicatorOperand,
        PriceOperand,
        TradeContextOperand,
        TimeOperand,
        ComputedOperand,
        ExternalOperand,
        CustomOperand,
    ],
    Field(discriminator="type"),
]

OPERAND_CLASSES = (
    ConstantOperand,
    IndicatorOperand,
    PriceOperand,
    TradeContextOperand,
    TimeOperand,
    ComputedOperand,
    ExternalOperand,
    CustomOperand,
)


# =============================================================================
# CONDITION NODES
# =============================================================================


class _ConditionBase(BaseModel):
    model_config = FROZEN_MODEL_CONFIG

    id: Optional[str] = Field(None, description="Builder node id, unique per document")
    label: Optional[str] = Field(None, description="Display label from the builder")


class AndNode(_ConditionBase):
    type: Literal["AND"] = "AND"
    children: tuple["ConditionNode", ...] = ()


class OrNode(_ConditionBase):
    type: Literal["OR"] = "OR"
    children: tuple["ConditionNode", ...] = ()


class NotNode(_ConditionBase):
    type: Literal["NOT"] = "NOT"
    child: "ConditionNode"


class IfThenElseNode(_ConditionBase):
    """Selects between two conditions; a missing ``else`` is false."""

    type: Literal["IF_THEN_ELSE"] = "IF_THEN_ELSE"
    condition: "ConditionNode"
    then: "ConditionNode"
    else_: Optional["ConditionNode"] = Field(None, alias="else")


class CompareNode(_ConditionBase):
    type: Literal["COMPARE"] = "COMPARE"
    left: Operand
    operator: ComparisonOperator
    right: Operand


class CrossoverNode(_ConditionBase):
    """series1 crosses above series2."""

    type: Literal["CROSSOVER"] = "CROSSOVER"
    series1: Operand
    series2: Operand


class CrossunderNode(_ConditionBase):
    """series1 crosses below series2."""

    type: Literal["CROSSUNDER"] = "CROSSUNDER"
    series1: Operand
    series2: Operand


class InRangeNode(_ConditionBase):
    """min < value < max, or with ``inclusive`` min <= value <= max."""

    type: Literal["IN_RANGE"] = "IN_RANGE"
    value: Operand
    min: Operand
    max: Operand
    inclusive: bool = False


ConditionNode = Annotated[
    Union[
        AndNode,
        OrNode,
        NotNode,
        IfThenElseNode,
        CompareNode,
        CrossoverNode,
        CrossunderNode,
        InRangeNode,
    ],
    Field(discriminator="type"),
]

CONDITION_CLASSES = (
    AndNode,
    OrNode,
    NotNode,
    IfThenElseNode,
    CompareNode,
    CrossoverNode,
    CrossunderNode,
    InRangeNode,
)

for _model in OPERAND_CLASSES + CONDITION_CLASSES:
    _model.model_rebuild()

_condition_adapter: TypeAdapter = TypeAdapter(ConditionNode)
_operand_adapter: TypeAdapter = TypeAdapter(Operand)


def parse_condition(data: Any):
    """Validate a raw mapping as a ConditionNode."""
    return _condition_adapter.validate_python(data)


def parse_operand(data: Any):
    """Validate a raw mapping as an Operand."""
    return _operand_adapter.validate_python(data)


def dump_node(node: BaseModel) -> dict[str, Any]:
    """Serialize a node back to its wire format."""
    return node.model_dump(mode="json", by_alias=True)


def child_nodes(node: BaseModel) -> tuple[BaseModel, ...]:
    """Return the direct children (conditions and operands) of a node."""
    if isinstance(node, (AndNode, OrNode)):
        return node.children
    if isinstance(node, NotNode):
        return (node.child,)
    if isinstance(node, IfThenElseNode):
        branches = (node.condition, node.then)
        return branches + ((node.else_,) if node.else_ is not None else ())
    if isinstance(node, CompareNode):
        return (node.left, node.right)
    if isinstance(node, (CrossoverNode, CrossunderNode)):
        return (node.series1, node.series2)
    if isinstance(node, InRangeNode):
        return (node.value, node.min, node.max)
    if isinstance(node, ComputedOperand):
        return node.operands
    return ()


def iter_nodes(root: BaseModel) -> Iterator[BaseModel]:
    """Yield every node of a tree in pre-order, without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(child_nodes(node)))
