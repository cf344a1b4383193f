"""
Built-in operators (ten kinds) and their registration.

Registration order: Input, Output, Custom, State, ConstState, Sum, Combine,
Transform, Effect, Merge.
"""

from typing import TYPE_CHECKING

from modelflow.operators.base import UNSET, Evaluation, Operator, resolve_callable
from modelflow.operators.io import InputOperator, LifecycleEvent, OutputOperator
from modelflow.operators.custom import CustomOperator
from modelflow.operators.state import ConstStateOperator, StateOperator, StateValueType, coerce_value
from modelflow.operators.arithmetic import CombineOperator, SumOperator
from modelflow.operators.transform import EffectOperator, TransformOperator
from modelflow.operators.merge import MergeOperator

if TYPE_CHECKING:
    from modelflow.foundation.registry import OperatorMap

BUILTIN_OPERATORS = (
    InputOperator,
    OutputOperator,
    CustomOperator,
    StateOperator,
    ConstStateOperator,
    SumOperator,
    CombineOperator,
    TransformOperator,
    EffectOperator,
    MergeOperator,
)


def register_builtin_operators(operator_map: "OperatorMap") -> "OperatorMap":
    """Install the ten built-ins into operator_map; returns it for chaining."""
    from modelflow.foundation.registry import register_operators

    register_operators(BUILTIN_OPERATORS, operator_map)
    return operator_map


__all__ = [
    "UNSET",
    "Evaluation",
    "Operator",
    "resolve_callable",
    "LifecycleEvent",
    "StateValueType",
    "coerce_value",
    "BUILTIN_OPERATORS",
    "register_builtin_operators",
    "InputOperator",
    "OutputOperator",
    "CustomOperator",
    "StateOperator",
    "ConstStateOperator",
    "SumOperator",
    "CombineOperator",
    "TransformOperator",
    "EffectOperator",
    "MergeOperator",
]
