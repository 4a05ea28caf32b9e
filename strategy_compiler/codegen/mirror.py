"""Derive one trading direction's signals from the other.

Mirroring inverts boolean comparison semantics only: ordering operators flip
(gt <-> lt, gte <-> lte) and crossovers swap with crossunders. Operand
subtrees, including COMPUTED arithmetic, are reused as-is. Nothing is
evaluated and no market data is involved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from strategy_compiler.codegen.errors import SchemaError
from strategy_compiler.schemas.common import ComparisonOperator, SignalDirection
from strategy_compiler.schemas.document import MirrorConfig, SignalConfig, StrategyDocument
from strategy_compiler.schemas.expression import (
    AndNode,
    CompareNode,
    CrossoverNode,
    CrossunderNode,
    IfThenElseNode,
    NotNode,
    OrNode,
)

logger = logging.getLogger(__name__)

_INVERSE_OPERATORS = {
    ComparisonOperator.GT: ComparisonOperator.LT,
    ComparisonOperator.LT: ComparisonOperator.GT,
    ComparisonOperator.GTE: ComparisonOperator.LTE,
    ComparisonOperator.LTE: ComparisonOperator.GTE,
}


@dataclass(frozen=True)
class MirrorPolicy:
    """Which constructs a mirror pass inverts."""

    invert_comparisons: bool = True
    invert_crossovers: bool = True

    @classmethod
    def from_config(cls, config: MirrorConfig) -> "MirrorPolicy":
        return cls(
            invert_comparisons=config.invert_comparisons,
            invert_crossovers=config.invert_crossovers,
        )


def invert_operator(operator: ComparisonOperator) -> ComparisonOperator:
    """Return the ordering inverse; eq, neq, in and not_in map to themselves."""
    return _INVERSE_OPERATORS.get(operator, operator)


def _condition_children(node) -> tuple:
    if isinstance(node, (AndNode, OrNode)):
        return node.children
    if isinstance(node, NotNode):
        return (node.child,)
    if isinstance(node, IfThenElseNode):
        branches = (node.condition, node.then)
        return branches + ((node.else_,) if node.else_ is not None else ())
    return ()


def _rebuild(node, children: list, policy: MirrorPolicy):
    if isinstance(node, (AndNode, OrNode)):
        return node.model_copy(update={"children": tuple(children)})
    if isinstance(node, NotNode):
        return node.model_copy(update={"child": children[0]})
    if isinstance(node, IfThenElseNode):
        update = {"condition": children[0], "then": children[1]}
        if len(children) > 2:
            update["else_"] = children[2]
        return node.model_copy(update=update)
    if isinstance(node, CompareNode):
        if not policy.invert_comparisons:
            return node
        return node.model_copy(update={"operator": invert_operator(node.operator)})
    if isinstance(node, CrossoverNode) and policy.invert_crossovers:
        return CrossunderNode(
            id=node.id, label=node.label, series1=node.series1, series2=node.series2
        )
    if isinstance(node, CrossunderNode) and policy.invert_crossovers:
        return CrossoverNode(
            id=node.id, label=node.label, series1=node.series1, series2=node.series2
        )
    return node


def mirror_condition(node, policy: MirrorPolicy = MirrorPolicy()):
    """Return the mirrored copy of a condition tree.

    The tree is rebuilt bottom-up with an explicit stack, so arbitrarily
    deep (but size-checked) trees never recurse.

    Args:
        node: Root ConditionNode
        policy: What to invert

    Returns:
        New ConditionNode; the input is left untouched
    """
    results: list = []
    stack: list[tuple[object, bool]] = [(node, False)]
    while stack:
        current, expanded = stack.pop()
        children = _condition_children(current)
        if not expanded:
            stack.append((current, True))
            stack.extend((child, False) for child in reversed(children))
            continue
        if children:
            rebuilt_children = results[-len(children):]
            del results[-len(children):]
        else:
            rebuilt_children = []
        results.append(_rebuild(current, rebuilt_children, policy))
    return results[0]


def mirror_signal_config(signal: SignalConfig, policy: MirrorPolicy = MirrorPolicy()) -> SignalConfig:
    """Mirror both the entry and the exit tree of a direction."""
    return SignalConfig(
        entry_conditions=mirror_condition(signal.entry_conditions, policy),
        exit_conditions=mirror_condition(signal.exit_conditions, policy),
    )


def apply_mirror(document: StrategyDocument) -> StrategyDocument:
    """Replace the target direction with the mirror of the source direction.

    Documents without an enabled mirror policy are returned as-is. The
    derived side always replaces any authored one.

    Raises:
        SchemaError: If the mirror source direction has no signal config
    """
    mirror = document.mirror_config
    if mirror is None or not mirror.enabled:
        return document

    source = document.signal_for(mirror.source)
    if source is None:
        raise SchemaError(f"mirror source {mirror.source.value} has no conditions defined")

    target = mirror.source.opposite
    logger.debug(f"Mirroring {mirror.source.value} signals onto {target.value}")
    derived = mirror_signal_config(source, MirrorPolicy.from_config(mirror))
    field_name = "short" if target is SignalDirection.SHORT else "long"
    return document.model_copy(update={field_name: derived})
