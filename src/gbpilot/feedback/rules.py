"""
Reward rules and their conditions.
"""

from __future__ import annotations

import ast
import logging
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .types import GameEvent

logger = logging.getLogger(__name__)

DELTA_SCORE_DIV_100 = "DELTA_SCORE_DIV_100"


def _delta_score_div_100(event: GameEvent) -> float:
    data = event.data or {}
    return float(data.get("change", 0)) / 100.0


DYNAMIC_REWARDS: Dict[str, Callable[[GameEvent], float]] = {
    DELTA_SCORE_DIV_100: _delta_score_div_100,
}

Condition = Union[str, Callable[[Mapping[str, Any]], bool]]


@dataclass(frozen=True, kw_only=True)
class RewardRule:
    """
    Maps an event type to a reward.

    Attributes
    ----------
    event_type:
        Detector id (or manual event type) the rule applies to.
    reward:
        Fixed amount, or the name of a dynamic formula from ``DYNAMIC_REWARDS``.
    condition:
        Optional predicate over the event data. Either a callable or an
        expression such as ``"change > 10 and value < 200"``.
    """

    id: str
    event_type: str
    reward: Union[float, str]
    condition: Optional[Condition] = None
    enabled: bool = True
    description: Optional[str] = None

    def applies_to(self, event: GameEvent) -> bool:
        if not self.enabled or self.event_type != event.type:
            return False
        if self.condition is None:
            return True
        try:
            return bool(evaluate_condition(self.condition, event.data or {}))
        except Exception as exc:
            logger.warning("Reward rule %s condition failed (%s); treating as false", self.id, exc)
            return False

    def amount(self, event: GameEvent) -> float:
        if isinstance(self.reward, str):
            formula = DYNAMIC_REWARDS.get(self.reward)
            if formula is None:
                logger.warning("Reward rule %s names unknown formula %s", self.id, self.reward)
                return 0.0
            return formula(event)
        return float(self.reward)


# --------------------------------------------------------------------------- #
# Restricted condition expressions
# --------------------------------------------------------------------------- #

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}


class ConditionError(ValueError):
    """Raised when a condition expression uses an unsupported construct."""


def evaluate_condition(condition: Condition, data: Mapping[str, Any]) -> bool:
    if callable(condition):
        return bool(condition(data))
    tree = ast.parse(condition, mode="eval")
    return bool(_eval_node(tree.body, data))


def _eval_node(node: ast.AST, data: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id in ("true", "True"):
            return True
        if node.id in ("false", "False"):
            return False
        if node.id not in data:
            raise ConditionError(f"unknown name '{node.id}'")
        return data[node.id]
    if isinstance(node, ast.BoolOp):
        values = (_eval_node(value, data) for value in node.values)
        if isinstance(node.op, ast.And):
            return all(values)
        return any(values)
    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, data)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_eval_node(node.left, data), _eval_node(node.right, data))
    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, data)
        for op, comparator in zip(node.ops, node.comparators):
            func = _COMPARE_OPS.get(type(op))
            if func is None:
                raise ConditionError(f"unsupported comparison {type(op).__name__}")
            right = _eval_node(comparator, data)
            if not func(left, right):
                return False
            left = right
        return True
    if isinstance(node, (ast.Tuple, ast.List)):
        return [_eval_node(item, data) for item in node.elts]
    raise ConditionError(f"unsupported expression {type(node).__name__}")


__all__ = [
    "ConditionError",
    "DELTA_SCORE_DIV_100",
    "DYNAMIC_REWARDS",
    "RewardRule",
    "evaluate_condition",
]
