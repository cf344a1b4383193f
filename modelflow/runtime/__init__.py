"""Runtime level: live blocks and the propagation pass."""

from modelflow.runtime.block import BlockStatus, ModelBlock, start
from modelflow.runtime.propagation import BlockState, PropagationPass, SideEffectFailure, values_equal

__all__ = [
    "BlockStatus",
    "ModelBlock",
    "start",
    "BlockState",
    "PropagationPass",
    "SideEffectFailure",
    "values_equal",
]
